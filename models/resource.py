"""
Staff and unavailability data models for the Therapy Staff Scheduler.

This module defines the 'Supply' side of the scheduler:
1. Therapists (human resources with weekly availability)
2. Callouts (declared unavailability for a therapist or a client)
"""

from enum import Enum
from typing import List, Optional, TYPE_CHECKING
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from datetime import date, time

from .calendar import DayOfWeek, to_minutes, ranges_overlap
from .client import ServiceType

if TYPE_CHECKING:
    from .schedule import Session


class AvailabilityBlock(BaseModel):
    """A specific time window when a therapist is working."""
    day_of_week: DayOfWeek = Field(description="Weekday the block repeats on")
    start_time: time = Field(description="Shift start")
    end_time: time = Field(description="Shift end")

    @model_validator(mode='after')
    def validate_times(self):
        if self.start_time >= self.end_time:
            raise ValueError("End time must be strictly after start time")
        return self

    def contains(self, start: int, end: int) -> bool:
        return start >= to_minutes(self.start_time) and end <= to_minutes(self.end_time)


class Therapist(BaseModel):
    """
    Clinical staff member with credentials and weekly availability.
    """
    id: str = Field(min_length=1, description="Unique identifier")
    name: str = Field(min_length=1, description="Name of the professional")
    team_id: Optional[str] = Field(default=None, description="Clinical team")

    qualifications: List[str] = Field(
        default_factory=list,
        description="Held credential tags (e.g. 'BCBA', 'MD_MEDICAID', 'OT Certified')"
    )
    allied_health_services: List[ServiceType] = Field(
        default_factory=list,
        description="Allied-health services this therapist may deliver"
    )

    # Scheduling Constraints
    availability: List[AvailabilityBlock] = Field(
        default_factory=list,
        description="Standard weekly working hours. Empty means the staff fallback window applies."
    )

    @field_validator('qualifications')
    @classmethod
    def dedupe_qualifications(cls, v):
        return list(dict.fromkeys(v))

    def blocks_for(self, day: DayOfWeek) -> List[AvailabilityBlock]:
        return [b for b in self.availability if b.day_of_week == day]

    def holds(self, tag: str) -> bool:
        return tag in self.qualifications

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "ther_01",
            "name": "Jordan Kim",
            "team_id": "team_blue",
            "qualifications": ["RBT", "MD_MEDICAID"],
            "allied_health_services": [],
            "availability": [
                {"day_of_week": "Monday", "start_time": "09:00:00", "end_time": "17:00:00"}
            ]
        }
    })


class CalloutEntity(str, Enum):
    """Which kind of entity a callout refers to."""
    CLIENT = "client"
    THERAPIST = "therapist"


class Callout(BaseModel):
    """
    Declared unavailability of a client or therapist.
    Applies to every date in [start_date, end_date] between start_time and end_time.
    """
    id: str = Field(description="Unique identifier")
    entity_type: CalloutEntity
    entity_id: str = Field(min_length=1)
    start_date: date
    end_date: date
    start_time: time
    end_time: time
    reason: Optional[str] = None

    @model_validator(mode='after')
    def validate_range(self):
        if self.end_date < self.start_date:
            raise ValueError("Callout End Date cannot be before Start Date")
        if self.start_time >= self.end_time:
            raise ValueError("Callout end time must be after start time")
        return self

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end_time)

    def affects_date(self, on: date) -> bool:
        return self.start_date <= on <= self.end_date

    def matches(self, session: "Session") -> bool:
        """True when the callout's entity is the session's therapist or client."""
        if self.entity_type == CalloutEntity.THERAPIST:
            return self.entity_id == session.therapist_id
        return session.client_id is not None and self.entity_id == session.client_id

    def blocks(self, session: "Session", on: date) -> bool:
        return (
            self.affects_date(on)
            and self.matches(session)
            and ranges_overlap(session.start_minutes, session.end_minutes, self.start_minutes, self.end_minutes)
        )
