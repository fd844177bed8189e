"""
Client and service-need data models for the Therapy Staff Scheduler.

This module defines the 'Demand' side of the scheduler: who needs care,
which credentials their payer requires, and which allied-health services
(OT / SLP) they receive on top of direct therapy.
"""

from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator, ConfigDict

from .calendar import DayOfWeek, TimeWindow


class ServiceType(str, Enum):
    """Allied-health services delivered alongside direct therapy."""
    OT = "OT"    # Occupational therapy
    SLP = "SLP"  # Speech-language pathology


class AlliedHealthNeed(BaseModel):
    """Frequency and duration target for one allied-health service."""

    service: ServiceType = Field(description="Service kind")
    sessions_per_week: int = Field(ge=1, le=7, description="Target sessions per week")
    duration_minutes: int = Field(gt=0, le=480, description="Length of each session")

    preferred_window: Optional[TimeWindow] = Field(
        default=None,
        description="Preferred time of day for the session"
    )
    specific_days: Optional[List[DayOfWeek]] = Field(
        default=None,
        description="Days this need applies to. None spreads sessions_per_week over the week."
    )

    def due_days(self) -> List[DayOfWeek]:
        """
        Days a session is due. Without specific_days the weekly count is spread
        evenly over Monday-Friday (2 -> Monday, Wednesday); counts above five
        spill into the weekend.
        """
        if self.specific_days:
            return list(self.specific_days)
        weekdays = [d for d in DayOfWeek if not d.is_weekend]
        if self.sessions_per_week >= len(weekdays):
            weekend = [d for d in DayOfWeek if d.is_weekend]
            return weekdays + weekend[:self.sessions_per_week - len(weekdays)]
        step = len(weekdays) / self.sessions_per_week
        return [weekdays[int(i * step)] for i in range(self.sessions_per_week)]

    def applies_on(self, day: DayOfWeek) -> bool:
        return day in self.due_days()


class Client(BaseModel):
    """
    A person receiving therapy.
    Read-only input for an optimization run.
    """

    id: str = Field(min_length=1, description="Unique identifier for the client")
    name: str = Field(min_length=1, description="Display name")
    team_id: Optional[str] = Field(default=None, description="Clinical team the client belongs to")

    required_credentials: List[str] = Field(
        default_factory=list,
        description="Credential tags the assigned therapist must hold (insurance / payer rules)"
    )
    allied_health_needs: List[AlliedHealthNeed] = Field(
        default_factory=list,
        description="Ordered allied-health service needs"
    )

    @field_validator('required_credentials')
    @classmethod
    def dedupe_credentials(cls, v):
        """Keep the first occurrence of each tag, preserving order."""
        return list(dict.fromkeys(v))

    def needs_on(self, day: DayOfWeek) -> List[AlliedHealthNeed]:
        return [need for need in self.allied_health_needs if need.applies_on(day)]

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "client_01",
            "name": "Avery P.",
            "team_id": "team_blue",
            "required_credentials": ["MD_MEDICAID"],
            "allied_health_needs": [
                {
                    "service": "SLP",
                    "sessions_per_week": 2,
                    "duration_minutes": 30,
                    "preferred_window": {"start": "13:00:00", "end": "15:00:00"}
                }
            ]
        }
    })
