"""
Calendar primitives shared by the demand, supply and output models.
"""

from enum import Enum
from datetime import date as date_type, time
from pydantic import BaseModel, Field, model_validator, ConfigDict


class DayOfWeek(str, Enum):
    """Day names used on schedule entries and availability blocks."""
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def from_date(cls, value: date_type) -> "DayOfWeek":
        # date.weekday(): 0=Monday, 6=Sunday
        return list(cls)[value.weekday()]

    @property
    def is_weekend(self) -> bool:
        return self in (DayOfWeek.SATURDAY, DayOfWeek.SUNDAY)


def to_minutes(value: time) -> int:
    """Minutes since midnight (seconds are ignored)."""
    return value.hour * 60 + value.minute


def from_minutes(total: int) -> time:
    return time(total // 60, total % 60)


def ranges_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    # Standard Overlap Logic: StartA < EndB and StartB < EndA
    return start_a < end_b and start_b < end_a


class TimeWindow(BaseModel):
    """A time-of-day range, start inclusive, end exclusive."""
    start: time = Field(description="Window start")
    end: time = Field(description="Window end")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode='after')
    def validate_times(self):
        if self.start >= self.end:
            raise ValueError("Window end time must be after start time")
        return self

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    def contains(self, start: int, end: int) -> bool:
        """True when [start, end) (in minutes) fits entirely inside the window."""
        return start >= self.start_minutes and end <= self.end_minutes

    def __str__(self) -> str:
        return f"{self.start.strftime('%H:%M')} - {self.end.strftime('%H:%M')}"
