"""
Scheduling package for the Therapy Staff Scheduler.

Public entry points:
1. Validation (validate_entry, validate_schedule)
2. Scoring (FitnessScorer, score)
3. Optimization runs (run, submit_run)
"""

from .rules import (
    RuleId,
    Severity,
    Violation,
    RULE_SEVERITY,
    severity_of,
    hard_violations
)

from .config import (
    SchedulingRules,
    PenaltyWeights,
    RunConfig,
    DEFAULT_RULES,
    DEFAULT_WEIGHTS
)

from .errors import (
    SchedulingInputError,
    EmptyRosterError,
    InvalidDateError
)

from .constraints import (
    ConstraintChecker,
    resolve_date,
    validate_entry,
    validate_schedule
)

from .scoring import (
    FitnessScorer,
    FitnessBreakdown,
    MIN_FITNESS,
    score
)

from .orchestrator import (
    CancellationToken,
    RunResult,
    RunStatus,
    ScheduleRun,
    run,
    submit_run
)

__all__ = [
    # --- Rule Vocabulary ---
    "RuleId",
    "Severity",
    "Violation",
    "RULE_SEVERITY",
    "severity_of",
    "hard_violations",

    # --- Configuration ---
    "SchedulingRules",
    "PenaltyWeights",
    "RunConfig",
    "DEFAULT_RULES",
    "DEFAULT_WEIGHTS",

    # --- Errors ---
    "SchedulingInputError",
    "EmptyRosterError",
    "InvalidDateError",

    # --- Validation ---
    "ConstraintChecker",
    "resolve_date",
    "validate_entry",
    "validate_schedule",

    # --- Scoring ---
    "FitnessScorer",
    "FitnessBreakdown",
    "MIN_FITNESS",
    "score",

    # --- Runs ---
    "CancellationToken",
    "RunResult",
    "RunStatus",
    "ScheduleRun",
    "run",
    "submit_run",
]
