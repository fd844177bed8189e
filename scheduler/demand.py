"""
Session demand expansion.

Flattens what each client needs on the day into concrete 'sessions to place':
- Direct therapy: the operating window (minus the client's callouts) tiled into blocks.
- Allied health: one session per need that applies on the day.

Also hosts the placement helpers the optimizer uses to find eligible therapists
and feasible start times for a demand.
"""

import math
from dataclasses import dataclass
from datetime import date as date_type
from typing import Iterable, List, Optional, Sequence, Tuple

from models import (
    Callout,
    CalloutEntity,
    Client,
    DayOfWeek,
    Session,
    SessionKind,
    Therapist,
    TimeWindow,
    ranges_overlap,
    to_minutes,
)
from .config import SchedulingRules

Span = Tuple[int, int]  # [start, end) in minutes since midnight


@dataclass(frozen=True)
class SessionDemand:
    """One session the optimizer tries to place for a client."""
    client_id: str
    kind: SessionKind
    duration_minutes: int
    preferred_window: Optional[Span] = None


def free_segments(window: Span, busy: Iterable[Span]) -> List[Span]:
    """Parts of `window` not covered by any busy span."""
    segments = []
    cursor, end = window
    for b_start, b_end in sorted(busy):
        if b_end <= cursor or b_start >= end:
            continue
        if b_start > cursor:
            segments.append((cursor, b_start))
        cursor = max(cursor, b_end)
    if cursor < end:
        segments.append((cursor, end))
    return segments


def tile_segment(segment: Span, rules: SchedulingRules) -> List[Span]:
    """
    Split a free segment into near-equal direct-therapy blocks.
    Blocks are whole coverage steps long; any remainder goes to the last block.
    Segments shorter than a minimum session cannot be covered and yield nothing.
    """
    start, end = segment
    length = end - start
    if length < rules.direct_min_minutes:
        return []

    count = math.ceil(length / rules.direct_block_minutes)
    count = max(1, min(count, length // rules.direct_min_minutes))

    unit = rules.coverage_step_minutes
    units, leftover = divmod(length, unit)
    base, extra = divmod(units, count)

    blocks = []
    cursor = start
    for i in range(count):
        duration = (base + (1 if i < extra else 0)) * unit
        if i == count - 1:
            duration += leftover
        blocks.append((cursor, cursor + duration))
        cursor += duration
    return blocks


def expand_demands(
    clients: Sequence[Client],
    on: date_type,
    callouts: Sequence[Callout],
    rules: SchedulingRules
) -> List[SessionDemand]:
    day = DayOfWeek.from_date(on)
    window = (rules.operating_window.start_minutes, rules.operating_window.end_minutes)
    demands = []

    for client in clients:
        if not day.is_weekend:
            busy = [
                (co.start_minutes, co.end_minutes)
                for co in callouts
                if co.entity_type == CalloutEntity.CLIENT and co.entity_id == client.id and co.affects_date(on)
            ]
            for segment in free_segments(window, busy):
                for block in tile_segment(segment, rules):
                    demands.append(SessionDemand(
                        client_id=client.id,
                        kind=SessionKind.DIRECT_THERAPY,
                        duration_minutes=block[1] - block[0],
                        preferred_window=block
                    ))

        for need in client.needs_on(day):
            preferred = None
            if need.preferred_window:
                preferred = (need.preferred_window.start_minutes, need.preferred_window.end_minutes)
            demands.append(SessionDemand(
                client_id=client.id,
                kind=SessionKind.for_service(need.service),
                duration_minutes=need.duration_minutes,
                preferred_window=preferred
            ))

    return demands


def demand_is_covered(demand: SessionDemand, sessions: Iterable[Session]) -> bool:
    """Does an existing (seed) schedule already serve this demand?"""
    for s in sessions:
        if s.client_id != demand.client_id or s.kind != demand.kind:
            continue
        if demand.kind != SessionKind.DIRECT_THERAPY or demand.preferred_window is None:
            return True
        if ranges_overlap(s.start_minutes, s.end_minutes, *demand.preferred_window):
            return True
    return False


# --- Placement helpers ---

def therapist_windows(
    therapist: Therapist,
    day: DayOfWeek,
    rules: SchedulingRules,
    clip: Optional[TimeWindow] = None
) -> List[Span]:
    """Working spans for the day, optionally clipped to another window."""
    if therapist.availability:
        spans = [(to_minutes(b.start_time), to_minutes(b.end_time)) for b in therapist.blocks_for(day)]
    else:
        fallback = rules.staff_fallback_window
        spans = [(fallback.start_minutes, fallback.end_minutes)]

    if clip is not None:
        spans = [(max(s, clip.start_minutes), min(e, clip.end_minutes)) for s, e in spans]
        spans = [(s, e) for s, e in spans if s < e]
    return spans


def is_eligible(
    therapist: Therapist,
    client: Client,
    kind: SessionKind,
    day: DayOfWeek,
    rules: SchedulingRules
) -> bool:
    """Credentialed for the client (and the service) and working that day."""
    if any(not therapist.holds(req) for req in client.required_credentials):
        return False
    if kind.is_allied_health:
        service = kind.service
        if service not in therapist.allied_health_services:
            return False
        certification = rules.service_certifications.get(service)
        if certification and not therapist.holds(certification):
            return False
    return bool(therapist_windows(therapist, day, rules, clip=rules.operating_window))


def eligible_therapists(
    kind: SessionKind,
    client: Client,
    therapists: Sequence[Therapist],
    day: DayOfWeek,
    rules: SchedulingRules
) -> List[Therapist]:
    return [t for t in therapists if is_eligible(t, client, kind, day, rules)]


def candidate_starts(
    duration: int,
    windows: Sequence[Span],
    preferred: Optional[Span] = None,
    step: int = 15
) -> List[int]:
    """
    Start times (minutes) at which a session of `duration` fits inside one of `windows`.
    With a preferred span, only starts inside it are returned unless that leaves none.
    """
    if duration <= 0:
        return []

    def fits(start: int) -> bool:
        return any(start >= ws and start + duration <= we for ws, we in windows)

    if preferred is not None:
        p_start, p_end = preferred
        starts = [s for s in range(p_start, p_end - duration + 1, step) if fits(s)]
        if starts:
            return starts

    return [s for ws, we in windows for s in range(ws, we - duration + 1, step)]
