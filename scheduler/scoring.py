"""
Fitness Scoring Engine for the Therapy Staff Scheduler.

This module determines the 'Quality' of a whole candidate schedule.
Higher is better. The score combines:
1. Billable minutes delivered (the main objective).
2. A reward per allied-health need satisfied on the day.
3. A small penalty per idle minute between a therapist's sessions.
4. The weighted sum of every violation the validator reports, plus the
   scoring-only findings (unmet needs, team misalignment, base deviation).

Weights are configured so hard violations dominate; soft ones only nudge.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date as date_type
from typing import Dict, Iterable, List, Optional, Sequence

from models import (
    BaseSchedule,
    Callout,
    Client,
    DayOfWeek,
    Session,
    SessionKind,
    Therapist,
)
from .config import PenaltyWeights, SchedulingRules, DEFAULT_RULES, DEFAULT_WEIGHTS
from .constraints import ConstraintChecker
from .rules import RuleId, Violation

# Score assigned to a candidate whose evaluation blew up
MIN_FITNESS = float("-inf")


@dataclass
class FitnessBreakdown:
    billable_minutes: int = 0
    satisfied_needs: int = 0
    idle_minutes: int = 0
    allied_health_reward: float = 0.0
    idle_penalty: float = 0.0
    violation_penalty: float = 0.0
    violations: List[Violation] = field(default_factory=list)

    @property
    def fitness(self) -> float:
        return self.billable_minutes + self.allied_health_reward - self.idle_penalty - self.violation_penalty

    def rule_counts(self) -> Dict[RuleId, int]:
        counts: Dict[RuleId, int] = defaultdict(int)
        for v in self.violations:
            counts[v.rule] += 1
        return dict(counts)


class FitnessScorer:
    """
    Scores candidate schedules for a single day.
    Built once per run; `calculate_fitness` is safe to call from several threads.
    """

    def __init__(
        self,
        clients: Iterable[Client],
        therapists: Iterable[Therapist],
        on: date_type,
        callouts: Sequence[Callout] = (),
        base_schedule: Optional[BaseSchedule] = None,
        rules: Optional[SchedulingRules] = None,
        weights: Optional[PenaltyWeights] = None
    ):
        self.rules = rules or DEFAULT_RULES
        self.weights = weights or DEFAULT_WEIGHTS
        self.checker = ConstraintChecker(clients, therapists, self.rules)
        self.on = on
        self.day = DayOfWeek.from_date(on)
        self.callouts = [co for co in callouts if co.affects_date(on)]

        # A template only counts on the weekdays it was saved for
        self.base_schedule = base_schedule if base_schedule and base_schedule.applies_to(self.day) else None

    def calculate_fitness(self, schedule: Sequence[Session]) -> float:
        return self.breakdown(schedule).fitness

    def breakdown(self, schedule: Sequence[Session]) -> FitnessBreakdown:
        todays = [s for s in schedule if s.day == self.day]
        result = FitnessBreakdown()

        result.billable_minutes = sum(max(0, s.duration_minutes) for s in todays if s.is_billable)

        needs_met = self._count_met_needs(todays)
        result.satisfied_needs = needs_met
        result.allied_health_reward = needs_met * self.weights.allied_health_need_reward

        result.idle_minutes = self._idle_minutes(todays)
        result.idle_penalty = result.idle_minutes * self.weights.idle_minute_penalty

        violations = self.checker.check_schedule(schedule, self.on, self.rules.operating_window, self.callouts)
        violations.extend(self.soft_findings(schedule))
        result.violations = violations
        result.violation_penalty = sum(self.weights.weight_for(v.rule) for v in violations)

        return result

    # --- Scoring-only findings ---

    def soft_findings(self, schedule: Sequence[Session]) -> List[Violation]:
        todays = [s for s in schedule if s.day == self.day]
        findings = []
        findings.extend(self._unmet_needs(todays))
        findings.extend(self._team_misalignment(todays))
        if self.base_schedule is not None:
            findings.extend(self._base_deviation(todays))
        return findings

    def _count_met_needs(self, todays: Sequence[Session]) -> int:
        met = 0
        for client in self.checker.clients.values():
            for need in client.needs_on(self.day):
                if self._need_met(client.id, need.service, todays):
                    met += 1
        return met

    @staticmethod
    def _need_met(client_id: str, service, todays: Sequence[Session]) -> bool:
        kind = SessionKind.for_service(service)
        return any(s.client_id == client_id and s.kind == kind for s in todays)

    def _unmet_needs(self, todays: Sequence[Session]) -> List[Violation]:
        findings = []
        for client in self.checker.clients.values():
            for need in client.needs_on(self.day):
                if self._need_met(client.id, need.service, todays):
                    continue
                findings.append(Violation(
                    RuleId.UNMET_ALLIED_HEALTH_NEED,
                    f"Client {client.name} needs {need.service.value} on {self.day.value} but none is scheduled.",
                    {"client_id": client.id, "service": need.service.value}
                ))
        return findings

    def _team_misalignment(self, todays: Sequence[Session]) -> List[Violation]:
        findings = []
        for s in todays:
            if s.client_id is None:
                continue
            client = self.checker.clients.get(s.client_id)
            therapist = self.checker.therapists.get(s.therapist_id)
            if not (client and therapist and client.team_id and therapist.team_id):
                continue
            if client.team_id != therapist.team_id:
                findings.append(Violation(
                    RuleId.TEAM_MISALIGNMENT,
                    f"{therapist.name} (team {therapist.team_id}) is with {client.name} "
                    f"(team {client.team_id}) at {s.time_label()}. (ID: {s.id})",
                    {"entry_id": s.id}
                ))
        return findings

    def _base_deviation(self, todays: Sequence[Session]) -> List[Violation]:
        findings = []
        current = {(s.client_id, s.therapist_id, s.start) for s in todays}
        for planned in self.base_schedule.sessions:
            # Template entries knocked out by a callout are not expected to survive
            if any(co.blocks(planned, self.on) for co in self.callouts):
                continue
            if (planned.client_id, planned.therapist_id, planned.start) in current:
                continue
            findings.append(Violation(
                RuleId.BASE_SCHEDULE_DEVIATION,
                f"Base schedule '{self.base_schedule.name}' entry {planned.id} "
                f"({planned.time_label()}) is not kept.",
                {"entry_id": planned.id}
            ))
        return findings

    # --- Utilisation ---

    @staticmethod
    def _idle_minutes(todays: Sequence[Session]) -> int:
        """Gaps between consecutive sessions of the same therapist."""
        by_therapist = defaultdict(list)
        for s in todays:
            by_therapist[s.therapist_id].append(s)

        idle = 0
        for sessions in by_therapist.values():
            ordered = sorted(sessions, key=lambda s: s.start_minutes)
            latest_end = None
            for s in ordered:
                if latest_end is not None and s.start_minutes > latest_end:
                    idle += s.start_minutes - latest_end
                latest_end = s.end_minutes if latest_end is None else max(latest_end, s.end_minutes)
        return idle


def score(
    schedule: Sequence[Session],
    clients: Iterable[Client],
    therapists: Iterable[Therapist],
    on: date_type,
    callouts: Sequence[Callout] = (),
    base_schedule: Optional[BaseSchedule] = None,
    rules: Optional[SchedulingRules] = None,
    weights: Optional[PenaltyWeights] = None
) -> float:
    """One-shot fitness of a schedule. Build a FitnessScorer when scoring many."""
    return FitnessScorer(clients, therapists, on, callouts, base_schedule, rules, weights).calculate_fitness(schedule)
