"""
Optimizer State Management.

This module acts as the 'Memory' of one optimization run.
It tracks:
1. The best-so-far schedule and its fitness.
2. Per-generation progress (best / mean fitness, failed evaluations).
3. Demands the optimizer could not place anywhere (for the final report).
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models import Session
from .demand import SessionDemand


@dataclass
class GenerationRecord:
    """Summary of one evaluated generation."""
    generation: int
    best_fitness: float
    mean_fitness: float
    failed_evaluations: int = 0


@dataclass
class PlacementFailure:
    """Record of failed placement attempts for one demand."""
    demand: SessionDemand
    attempts: int = 0
    reasons: List[str] = field(default_factory=list)


class OptimizerState:
    """
    Maintains the mutable state of the optimizer during execution.
    Owned by the run's driver thread; workers never touch it.
    """

    def __init__(self):
        self.best_schedule: Optional[List[Session]] = None
        self.best_fitness: float = float("-inf")
        self.best_generation: Optional[int] = None

        self.history: List[GenerationRecord] = []
        self.failed_evaluations: int = 0

        self.placement_failures: Dict[SessionDemand, PlacementFailure] = {}

        self.cancelled = False
        self.stalled = False

    @property
    def generations_run(self) -> int:
        return len(self.history)

    def consider(self, schedule: List[Session], fitness: float, generation: Optional[int] = None) -> bool:
        """Keep `schedule` if it beats the best so far. Returns True on improvement."""
        if self.best_schedule is not None and fitness <= self.best_fitness:
            return False
        self.best_schedule = list(schedule)
        self.best_fitness = fitness
        self.best_generation = generation
        return True

    def record_generation(self, generation: int, fitnesses: List[float], failed: int = 0) -> GenerationRecord:
        finite = [f for f in fitnesses if f != float("-inf")]
        record = GenerationRecord(
            generation=generation,
            best_fitness=max(fitnesses) if fitnesses else float("-inf"),
            mean_fitness=(sum(finite) / len(finite)) if finite else float("-inf"),
            failed_evaluations=failed
        )
        self.history.append(record)
        self.failed_evaluations += failed
        return record

    def record_failure(self, demand: SessionDemand, reason: str) -> None:
        """
        Log a demand that could not be placed in one candidate.
        The same demand fails once per candidate at most, so reasons are aggregated.
        """
        failure = self.placement_failures.get(demand)
        if failure is None:
            failure = self.placement_failures[demand] = PlacementFailure(demand=demand)
        failure.attempts += 1
        failure.reasons.append(reason)

    def generations_since_improvement(self) -> int:
        if self.best_generation is None:
            return self.generations_run
        return self.generations_run - 1 - self.best_generation

    # --- Reporting Methods ---

    def get_statistics(self) -> Dict[str, Any]:
        """Summary figures for the final report."""
        stats = {
            "generations_run": self.generations_run,
            "best_fitness": self.best_fitness,
            "best_generation": self.best_generation,
            "failed_evaluations": self.failed_evaluations,
            "unplaced_demands": len(self.placement_failures),
            "cancelled": self.cancelled,
            "stalled": self.stalled,
        }
        if self.best_schedule is not None:
            stats["sessions"] = len(self.best_schedule)
            stats["billable_sessions"] = sum(1 for s in self.best_schedule if s.is_billable)
        if self.history:
            stats["first_generation_best"] = self.history[0].best_fitness
        return stats

    def get_failure_report(self) -> List[Dict[str, Any]]:
        """Human-readable list of demands that could not be placed, most frequent first."""
        report = []
        for demand, failure in self.placement_failures.items():
            reasons = defaultdict(int)
            for r in failure.reasons:
                reasons[r] += 1
            report.append({
                "client_id": demand.client_id,
                "kind": demand.kind.value,
                "duration_minutes": demand.duration_minutes,
                "total_attempts": failure.attempts,
                "primary_failure_cause": max(reasons, key=reasons.get),
                "reason_breakdown": dict(reasons),
            })
        report.sort(key=lambda x: x["total_attempts"], reverse=True)
        return report
