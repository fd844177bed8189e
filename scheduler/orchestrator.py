"""
Run Orchestration.

Entry point for one 'generate' or 'optimize' run:
1. Check inputs (non-empty rosters, a resolvable date). Unusable input ends the
   run immediately with a FATAL result, before any search work.
2. Drive the PopulationOptimizer.
3. Validate the best schedule found and summarise it for the caller.

`submit_run` starts the same work in the background and hands back a
ScheduleRun that can be cancelled; cancellation keeps the best-so-far schedule.
"""

import logging
import math
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from models import BaseSchedule, Callout, Client, Session, Therapist
from .config import PenaltyWeights, RunConfig, SchedulingRules, DEFAULT_RULES
from .constraints import DateLike, resolve_date, validate_schedule
from .engine import PopulationOptimizer, ProgressCallback
from .errors import EmptyRosterError, SchedulingInputError
from .rules import Violation, hard_violations

logger = logging.getLogger(__name__)


def _finite_or_none(value: Any) -> Any:
    """Strict JSON has no infinities; an unscored run reports its fitness as null."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


class RunStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FATAL = "fatal"


class CancellationToken:
    """Cooperative cancellation flag shared between the caller and a running optimizer."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class RunResult:
    best_schedule: Optional[List[Session]]
    best_fitness: float
    generations_run: int
    remaining_violations: List[Violation]
    success: bool
    status_message: str
    status: RunStatus = RunStatus.COMPLETED
    statistics: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def fatal(cls, message: str) -> "RunResult":
        return cls(
            best_schedule=None,
            best_fitness=float("-inf"),
            generations_run=0,
            remaining_violations=[],
            success=False,
            status_message=message,
            status=RunStatus.FATAL
        )

    @property
    def hard_violations(self) -> List[Violation]:
        return hard_violations(self.remaining_violations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "success": self.success,
            "status_message": self.status_message,
            "best_fitness": _finite_or_none(self.best_fitness),
            "generations_run": self.generations_run,
            "best_schedule": (
                [s.model_dump(mode="json") for s in self.best_schedule]
                if self.best_schedule is not None else None
            ),
            "remaining_violations": [v.to_dict() for v in self.remaining_violations],
            "statistics": {k: _finite_or_none(v) for k, v in self.statistics.items()},
        }


def _check_inputs(clients: Sequence[Client], therapists: Sequence[Therapist], date: Optional[DateLike]):
    if not clients:
        raise EmptyRosterError("Cannot run: no clients supplied.")
    if not therapists:
        raise EmptyRosterError("Cannot run: no therapists supplied.")
    return resolve_date(date)


def run(
    clients: Sequence[Client],
    therapists: Sequence[Therapist],
    date: Optional[DateLike],
    callouts: Sequence[Callout],
    run_config: RunConfig,
    seed_schedule: Optional[Sequence[Session]] = None,
    base_schedule: Optional[BaseSchedule] = None,
    *,
    rules: Optional[SchedulingRules] = None,
    weights: Optional[PenaltyWeights] = None,
    cancel_token: Optional[CancellationToken] = None,
    on_progress: Optional[ProgressCallback] = None
) -> RunResult:
    """Generate (no seed) or optimize (with seed) the schedule for one day."""
    rules = rules or DEFAULT_RULES
    callouts = list(callouts or [])
    mode = "Optimization" if seed_schedule else "Generation"

    try:
        on = _check_inputs(clients, therapists, date)
    except SchedulingInputError as e:
        logger.error(f"{mode} aborted: {e}")
        return RunResult.fatal(str(e))

    optimizer = PopulationOptimizer(
        clients, therapists, on, callouts, run_config,
        seed_schedule=seed_schedule,
        base_schedule=base_schedule,
        rules=rules,
        weights=weights
    )
    state = optimizer.run(cancel_token=cancel_token, on_progress=on_progress)

    best = state.best_schedule or []
    violations = validate_schedule(best, clients, therapists, on, rules.operating_window, callouts, rules)
    hard = hard_violations(violations)
    success = not hard

    if state.cancelled:
        status = RunStatus.CANCELLED
        message = (
            f"{mode} cancelled after {state.generations_run} generations. "
            f"Returning the best schedule found so far (fitness {state.best_fitness:.2f})."
        )
    else:
        status = RunStatus.COMPLETED
        message = (
            f"{mode} finished after {state.generations_run} generations. "
            f"Best fitness: {state.best_fitness:.2f}."
        )
    if success:
        message += " All hard rules satisfied."
    else:
        message += f" {len(hard)} hard violation(s) remain."

    logger.info(message)

    stats = state.get_statistics()
    stats["unplaced"] = state.get_failure_report()
    return RunResult(
        best_schedule=best,
        best_fitness=state.best_fitness,
        generations_run=state.generations_run,
        remaining_violations=violations,
        success=success,
        status_message=message,
        status=status,
        statistics=stats
    )


class ScheduleRun:
    """Handle on a run started with `submit_run`."""

    def __init__(self, future: Future, token: CancellationToken):
        self._future = future
        self._token = token

    def cancel(self) -> None:
        """Ask the optimizer to stop at the next generation boundary."""
        self._token.cancel()

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> RunResult:
        return self._future.result(timeout=timeout)


def submit_run(
    clients: Sequence[Client],
    therapists: Sequence[Therapist],
    date: Optional[DateLike],
    callouts: Sequence[Callout],
    run_config: RunConfig,
    seed_schedule: Optional[Sequence[Session]] = None,
    base_schedule: Optional[BaseSchedule] = None,
    *,
    executor: Optional[Executor] = None,
    **kwargs
) -> ScheduleRun:
    """Start `run` in the background. Without an executor a single-use worker thread is used."""
    token = CancellationToken()
    pool = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="schedule-run")
    future = pool.submit(
        run, clients, therapists, date, callouts, run_config, seed_schedule, base_schedule,
        cancel_token=token, **kwargs
    )
    if executor is None:
        # Already-submitted work keeps running; the thread exits when it is done
        pool.shutdown(wait=False)
    return ScheduleRun(future, token)
