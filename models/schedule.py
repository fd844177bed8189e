"""
Schedule data models for the Therapy Staff Scheduler.

This module defines the 'Output' of the scheduling engine:
session entries committed for one calendar day, and saved base schedules
that act as a template for a weekday.

A session is a tagged variant on `kind`. Client-facing kinds always carry a
client; indirect time (the therapist's break) cannot carry one at all.
"""

from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Union
from pydantic import BaseModel, Field, ConfigDict, TypeAdapter
from datetime import time

from .calendar import DayOfWeek, to_minutes
from .client import ServiceType


class SessionKind(str, Enum):
    """What a schedule entry is used for."""
    DIRECT_THERAPY = "direct_therapy"
    ALLIED_HEALTH_OT = "allied_health_ot"
    ALLIED_HEALTH_SLP = "allied_health_slp"
    INDIRECT = "indirect"

    @property
    def is_billable(self) -> bool:
        return self != SessionKind.INDIRECT

    @property
    def is_allied_health(self) -> bool:
        return self in (SessionKind.ALLIED_HEALTH_OT, SessionKind.ALLIED_HEALTH_SLP)

    @property
    def service(self) -> Optional[ServiceType]:
        """The allied-health service delivered by this kind, if any."""
        return _KIND_TO_SERVICE.get(self)

    @classmethod
    def for_service(cls, service: ServiceType) -> "SessionKind":
        return _SERVICE_TO_KIND[service]


_KIND_TO_SERVICE = {
    SessionKind.ALLIED_HEALTH_OT: ServiceType.OT,
    SessionKind.ALLIED_HEALTH_SLP: ServiceType.SLP,
}
_SERVICE_TO_KIND = {v: k for k, v in _KIND_TO_SERVICE.items()}


class SessionBase(BaseModel):
    """Fields shared by every schedule entry."""

    id: str = Field(min_length=1, description="Unique identifier of the entry")
    therapist_id: str = Field(min_length=1, description="Assigned therapist")
    day: DayOfWeek = Field(description="Day of week the entry is scheduled on")
    start: time = Field(description="Start time (minute resolution)")
    end: time = Field(description="End time (minute resolution)")

    # Entries are immutable; edits go through model_copy(update=...) or replace_session()
    model_config = ConfigDict(frozen=True)

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    @property
    def is_billable(self) -> bool:
        return self.kind.is_billable

    def time_label(self) -> str:
        return f"{self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')}"


class TherapySession(SessionBase):
    """A billable client-facing session (direct therapy, OT or SLP)."""
    kind: Literal[
        SessionKind.DIRECT_THERAPY,
        SessionKind.ALLIED_HEALTH_OT,
        SessionKind.ALLIED_HEALTH_SLP,
    ] = SessionKind.DIRECT_THERAPY
    client_id: str = Field(min_length=1, description="Client receiving the session")


class IndirectSession(SessionBase):
    """Non-billable indirect time (the daily break). Never tied to a client."""
    kind: Literal[SessionKind.INDIRECT] = SessionKind.INDIRECT

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def client_id(self) -> None:
        return None


Session = Annotated[Union[TherapySession, IndirectSession], Field(discriminator="kind")]
Schedule = List[Session]

_session_adapter = TypeAdapter(Session)


def parse_session(data: Dict[str, Any]) -> Session:
    """
    Build the right session variant from raw data (e.g. JSON).
    A null client on an indirect entry is accepted and dropped.
    """
    payload = dict(data)
    if payload.get("kind") == SessionKind.INDIRECT.value and payload.get("client_id") is None:
        payload.pop("client_id", None)
    return _session_adapter.validate_python(payload)


# --- Schedule helpers (explicit replace-by-id editing) ---

def replace_session(schedule: Iterable[Session], updated: Session) -> Schedule:
    """Return a new schedule where the entry sharing `updated.id` is swapped out."""
    result = []
    found = False
    for entry in schedule:
        if entry.id == updated.id:
            result.append(updated)
            found = True
        else:
            result.append(entry)
    if not found:
        raise KeyError(f"No session with id {updated.id!r} in schedule")
    return result


def remove_session(schedule: Iterable[Session], session_id: str) -> Schedule:
    return [entry for entry in schedule if entry.id != session_id]


def sessions_for_therapist(schedule: Iterable[Session], therapist_id: str) -> Schedule:
    return [entry for entry in schedule if entry.therapist_id == therapist_id]


def sessions_for_client(schedule: Iterable[Session], client_id: str) -> Schedule:
    return [entry for entry in schedule if entry.client_id == client_id]


class BaseSchedule(BaseModel):
    """
    A saved template schedule for one or more weekdays.
    Only used as a soft 'deviation' signal when scoring.
    """
    id: str = Field(description="Unique identifier")
    name: str = Field(min_length=1)
    applies_to_days: List[DayOfWeek] = Field(
        default_factory=list,
        description="Weekdays the template applies to. Empty means every day."
    )
    sessions: List[Session] = Field(default_factory=list)

    def applies_to(self, day: DayOfWeek) -> bool:
        return not self.applies_to_days or day in self.applies_to_days

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "base_weekday",
            "name": "Standard weekday",
            "applies_to_days": ["Monday", "Tuesday"],
            "sessions": [
                {
                    "id": "s1",
                    "kind": "direct_therapy",
                    "client_id": "client_01",
                    "therapist_id": "ther_01",
                    "day": "Monday",
                    "start": "09:00:00",
                    "end": "11:00:00"
                }
            ]
        }
    })
