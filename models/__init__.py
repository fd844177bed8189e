"""
Data models package for the Therapy Staff Scheduler.

This package exports the three core pillars of the data architecture:
1. Demand (Client, AlliedHealthNeed)
2. Supply (Therapist, AvailabilityBlock, Callout)
3. Output (Session variants, BaseSchedule)
"""

from .calendar import (
    DayOfWeek,
    TimeWindow,
    to_minutes,
    from_minutes,
    ranges_overlap
)

from .client import (
    Client,
    AlliedHealthNeed,
    ServiceType
)

from .resource import (
    Therapist,
    AvailabilityBlock,
    Callout,
    CalloutEntity
)

from .schedule import (
    SessionKind,
    Session,
    Schedule,
    TherapySession,
    IndirectSession,
    BaseSchedule,
    parse_session,
    replace_session,
    remove_session,
    sessions_for_therapist,
    sessions_for_client
)

__all__ = [
    # --- Calendar Primitives ---
    "DayOfWeek",
    "TimeWindow",
    "to_minutes",
    "from_minutes",
    "ranges_overlap",

    # --- Demand Models ---
    "Client",
    "AlliedHealthNeed",
    "ServiceType",

    # --- Resource & Constraint Models ---
    "Therapist",
    "AvailabilityBlock",
    "Callout",
    "CalloutEntity",

    # --- Output Models ---
    "SessionKind",
    "Session",
    "Schedule",
    "TherapySession",
    "IndirectSession",
    "BaseSchedule",
    "parse_session",
    "replace_session",
    "remove_session",
    "sessions_for_therapist",
    "sessions_for_client",
]
