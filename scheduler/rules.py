"""
Violation vocabulary shared by the validator, the scorer and the optimizer.

Every rule the system can report is a member of `RuleId`. The set is closed:
`RULE_SEVERITY` must cover every member, which is what lets the scorer and
the orchestrator treat violations exhaustively.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List


class Severity(str, Enum):
    HARD = "hard"  # Defines an infeasible schedule
    SOFT = "soft"  # Quality signal only


class RuleId(str, Enum):
    # --- Per entry ---
    INVALID_TIME_ORDER = "INVALID_TIME_ORDER"
    DIRECT_THERAPY_TOO_SHORT = "DIRECT_THERAPY_TOO_SHORT"
    DIRECT_THERAPY_TOO_LONG = "DIRECT_THERAPY_TOO_LONG"
    ALLIED_HEALTH_DURATION_INVALID = "ALLIED_HEALTH_DURATION_INVALID"
    BREAK_DURATION_INVALID = "BREAK_DURATION_INVALID"
    THERAPIST_NOT_FOUND = "THERAPIST_NOT_FOUND"
    CLIENT_NOT_FOUND = "CLIENT_NOT_FOUND"
    OUTSIDE_THERAPIST_AVAILABILITY = "OUTSIDE_THERAPIST_AVAILABILITY"
    OUTSIDE_OPERATING_HOURS = "OUTSIDE_OPERATING_HOURS"
    DIRECT_THERAPY_ON_WEEKEND = "DIRECT_THERAPY_ON_WEEKEND"
    THERAPIST_TIME_CONFLICT = "THERAPIST_TIME_CONFLICT"
    CLIENT_TIME_CONFLICT = "CLIENT_TIME_CONFLICT"
    CREDENTIAL_MISMATCH = "CREDENTIAL_MISMATCH"
    ALLIED_HEALTH_SERVICE_NOT_ENABLED = "ALLIED_HEALTH_SERVICE_NOT_ENABLED"
    ALLIED_HEALTH_CERTIFICATION_MISSING = "ALLIED_HEALTH_CERTIFICATION_MISSING"

    # --- Per schedule ---
    INVALID_SELECTED_DATE = "INVALID_SELECTED_DATE"
    WRONG_DAY_FOR_ENTRY = "WRONG_DAY_FOR_ENTRY"
    SESSION_OVERLAPS_CALLOUT = "SESSION_OVERLAPS_CALLOUT"
    MAX_BILLABLE_SESSIONS_EXCEEDED = "MAX_BILLABLE_SESSIONS_EXCEEDED"
    SUPERVISOR_NO_DIRECT_TIME = "SUPERVISOR_NO_DIRECT_TIME"
    MISSING_BREAK = "MISSING_BREAK"
    MULTIPLE_BREAKS = "MULTIPLE_BREAKS"
    BREAK_OUTSIDE_WINDOW = "BREAK_OUTSIDE_WINDOW"
    BREAK_WITHOUT_BILLABLE_WORK = "BREAK_WITHOUT_BILLABLE_WORK"
    HIGH_SCRUTINY_THERAPIST_LIMIT = "HIGH_SCRUTINY_THERAPIST_LIMIT"
    CLIENT_COVERAGE_GAP = "CLIENT_COVERAGE_GAP"

    # --- Scoring only ---
    UNMET_ALLIED_HEALTH_NEED = "UNMET_ALLIED_HEALTH_NEED"
    TEAM_MISALIGNMENT = "TEAM_MISALIGNMENT"
    BASE_SCHEDULE_DEVIATION = "BASE_SCHEDULE_DEVIATION"

    @property
    def severity(self) -> Severity:
        return severity_of(self)


_SOFT_RULES = {
    RuleId.MAX_BILLABLE_SESSIONS_EXCEEDED,
    RuleId.SUPERVISOR_NO_DIRECT_TIME,
    RuleId.BREAK_OUTSIDE_WINDOW,
    RuleId.BREAK_WITHOUT_BILLABLE_WORK,
    RuleId.UNMET_ALLIED_HEALTH_NEED,
    RuleId.TEAM_MISALIGNMENT,
    RuleId.BASE_SCHEDULE_DEVIATION,
}

RULE_SEVERITY: Dict[RuleId, Severity] = {
    rule: (Severity.SOFT if rule in _SOFT_RULES else Severity.HARD) for rule in RuleId
}


def severity_of(rule: RuleId) -> Severity:
    return RULE_SEVERITY[rule]


@dataclass(frozen=True)
class Violation:
    """
    One rule breach. Identity is (rule, message): the structured detail
    rides along but does not take part in equality or deduplication.
    """
    rule: RuleId
    message: str
    detail: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def severity(self) -> Severity:
        return self.rule.severity

    @property
    def is_hard(self) -> bool:
        return self.severity == Severity.HARD

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule.value,
            "severity": self.severity.value,
            "message": self.message,
            "detail": dict(self.detail),
        }


def dedupe(violations: Iterable[Violation]) -> List[Violation]:
    """Drop repeats of the same (rule, message), keeping first-seen order."""
    return list(dict.fromkeys(violations))


def hard_violations(violations: Iterable[Violation]) -> List[Violation]:
    return [v for v in violations if v.is_hard]
