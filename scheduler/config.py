"""
Configuration models for the Therapy Staff Scheduler.

Three layers, all caller-visible:
1. SchedulingRules - the clinic's policy (hours, break window, caps, credential tags).
2. PenaltyWeights  - how much each rule breach costs in the fitness function.
3. RunConfig       - the evolutionary search parameters for one run.
"""

from datetime import time
from typing import Dict, Literal, Optional
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict

from models import TimeWindow, ServiceType
from .rules import RuleId


class SchedulingRules(BaseModel):
    """Clinic policy consumed by the validator, the scorer and the optimizer."""

    operating_window: TimeWindow = Field(
        default=TimeWindow(start=time(9, 0), end=time(17, 0)),
        description="Facility hours; client-facing sessions and coverage live here"
    )
    staff_fallback_window: TimeWindow = Field(
        default=TimeWindow(start=time(8, 45), end=time(17, 15)),
        description="Assumed availability for therapists that declare none"
    )

    # --- Breaks ---
    break_window: TimeWindow = Field(
        default=TimeWindow(start=time(11, 0), end=time(14, 0)),
        description="Core window; the break must start early enough to end inside it"
    )
    ideal_break_window: TimeWindow = Field(
        default=TimeWindow(start=time(11, 30), end=time(13, 30)),
        description="Window of start times preferred when the optimizer places breaks"
    )
    break_minutes: int = Field(default=30, gt=0)

    # --- Session lengths ---
    direct_min_minutes: int = Field(default=45, gt=0)
    direct_max_minutes: int = Field(default=180, gt=0)
    direct_block_minutes: int = Field(
        default=120,
        gt=0,
        description="Target block length when tiling a client's day with direct therapy"
    )
    coverage_step_minutes: int = Field(default=15, gt=0)

    # --- Caps & credential tags ---
    max_billable_sessions: int = Field(default=4, ge=0, description="Billable notes per therapist per day")
    supervisor_qualification: str = Field(default="BCBA")
    high_scrutiny_credential: str = Field(default="MD_MEDICAID")
    high_scrutiny_max_therapists: int = Field(default=3, ge=1)
    service_certifications: Dict[ServiceType, str] = Field(
        default_factory=lambda: {ServiceType.OT: "OT Certified", ServiceType.SLP: "SLP Certified"}
    )

    model_config = ConfigDict(frozen=True)

    @model_validator(mode='after')
    def validate_lengths(self):
        if self.direct_min_minutes > self.direct_max_minutes:
            raise ValueError("direct_min_minutes cannot exceed direct_max_minutes")
        if not (self.direct_min_minutes <= self.direct_block_minutes <= self.direct_max_minutes):
            raise ValueError("direct_block_minutes must lie within the direct-therapy bounds")
        if self.break_minutes > self.break_window.duration_minutes:
            raise ValueError("break_window is shorter than break_minutes")
        return self

    @property
    def latest_break_start(self) -> int:
        """Latest start (minutes) that still ends the break inside the core window."""
        return self.break_window.end_minutes - self.break_minutes


# High-priority "Hard" violations dominate; "Soft" ones only nudge the search.
_DEFAULT_WEIGHTS: Dict[RuleId, float] = {
    RuleId.INVALID_SELECTED_DATE: 10000,
    RuleId.INVALID_TIME_ORDER: 5500,
    RuleId.DIRECT_THERAPY_TOO_SHORT: 5500,
    RuleId.DIRECT_THERAPY_TOO_LONG: 5500,
    RuleId.ALLIED_HEALTH_DURATION_INVALID: 5500,
    RuleId.BREAK_DURATION_INVALID: 5500,
    RuleId.THERAPIST_NOT_FOUND: 5000,
    RuleId.CLIENT_NOT_FOUND: 5000,
    RuleId.WRONG_DAY_FOR_ENTRY: 5000,
    RuleId.DIRECT_THERAPY_ON_WEEKEND: 5000,
    RuleId.OUTSIDE_THERAPIST_AVAILABILITY: 2500,
    RuleId.OUTSIDE_OPERATING_HOURS: 2500,
    RuleId.THERAPIST_TIME_CONFLICT: 6000,
    RuleId.CLIENT_TIME_CONFLICT: 6000,
    RuleId.CREDENTIAL_MISMATCH: 1800,
    RuleId.ALLIED_HEALTH_SERVICE_NOT_ENABLED: 1800,
    RuleId.ALLIED_HEALTH_CERTIFICATION_MISSING: 1800,
    RuleId.SESSION_OVERLAPS_CALLOUT: 2200,
    RuleId.MISSING_BREAK: 7000,
    RuleId.MULTIPLE_BREAKS: 3000,
    RuleId.HIGH_SCRUTINY_THERAPIST_LIMIT: 900,
    RuleId.CLIENT_COVERAGE_GAP: 3000,
    # Soft
    RuleId.MAX_BILLABLE_SESSIONS_EXCEEDED: 1000,
    RuleId.SUPERVISOR_NO_DIRECT_TIME: 500,
    RuleId.UNMET_ALLIED_HEALTH_NEED: 150,
    RuleId.BASE_SCHEDULE_DEVIATION: 50,
    RuleId.BREAK_WITHOUT_BILLABLE_WORK: 50,
    RuleId.TEAM_MISALIGNMENT: 10,
    RuleId.BREAK_OUTSIDE_WINDOW: 5,
}


class PenaltyWeights(BaseModel):
    """Fitness weights. Every RuleId has an entry; overrides are merged on top."""

    penalties: Dict[RuleId, float] = Field(default_factory=lambda: dict(_DEFAULT_WEIGHTS))
    allied_health_need_reward: float = Field(default=50.0, ge=0)
    idle_minute_penalty: float = Field(default=0.5, ge=0)

    model_config = ConfigDict(frozen=True)

    @field_validator('penalties')
    @classmethod
    def fill_missing(cls, v):
        merged = dict(_DEFAULT_WEIGHTS)
        merged.update(v)
        return merged

    def weight_for(self, rule: RuleId) -> float:
        return self.penalties[rule]


class RunConfig(BaseModel):
    """Evolutionary search parameters. Defaults are documented, not hidden."""

    population_size: int = Field(default=100, ge=2)
    max_generations: int = Field(default=500, ge=0)
    mutation_rate: float = Field(default=0.05, ge=0.0, le=1.0)
    crossover_rate: float = Field(default=0.8, ge=0.0, le=1.0)
    elitism_rate: float = Field(default=0.1, ge=0.0, le=1.0)

    # --- Execution ---
    max_workers: int = Field(default=4, ge=1, description="Workers used for fitness evaluation")
    parallelism: Literal["thread", "process", "none"] = Field(
        default="process",
        description="Worker pool for fitness evaluation; scoring is CPU-bound, so processes by default"
    )

    # --- Search details ---
    placement_attempts: int = Field(default=100, ge=1, description="Retries when placing one demand")
    seed_fraction: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Share of generation zero built on top of the seed schedule"
    )
    random_seed: Optional[int] = Field(default=None, description="Seed for reproducible runs")
    stall_generations: Optional[int] = Field(
        default=None,
        ge=1,
        description="Stop early after this many generations without improvement"
    )

    @property
    def elite_count(self) -> int:
        return int(self.population_size * self.elitism_rate)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "population_size": 60,
            "max_generations": 200,
            "mutation_rate": 0.1,
            "crossover_rate": 0.8,
            "elitism_rate": 0.1,
            "max_workers": 4,
            "parallelism": "process",
            "random_seed": 7
        }
    })


DEFAULT_RULES = SchedulingRules()
DEFAULT_WEIGHTS = PenaltyWeights()
