"""
Constraint Validation Logic.

This module answers the question: "What is wrong with this schedule?"
It enforces physical reality (nobody is in two places at once), credentialing,
regulatory caps, break placement and continuous client coverage.

Violations are data. Nothing here raises for an imperfect schedule; callers get
a (possibly empty) list back, deduplicated by (rule, message).
"""

from collections import defaultdict
from datetime import date as date_type, datetime
from typing import Dict, Iterable, List, Optional, Sequence, Union

from models import (
    Callout,
    CalloutEntity,
    Client,
    DayOfWeek,
    Session,
    SessionKind,
    Therapist,
    TimeWindow,
    from_minutes,
    ranges_overlap,
)
from .config import SchedulingRules, DEFAULT_RULES
from .errors import InvalidDateError
from .rules import RuleId, Violation, dedupe

DateLike = Union[date_type, str]


def resolve_date(value: Optional[DateLike]) -> date_type:
    """Turn a date or an ISO 'YYYY-MM-DD' string into a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date_type):
        return value
    if isinstance(value, str):
        try:
            return date_type.fromisoformat(value.strip())
        except ValueError as e:
            raise InvalidDateError(f"Cannot parse date {value!r}") from e
    raise InvalidDateError(f"Unsupported date value {value!r}")


def _hm(minutes: int) -> str:
    return from_minutes(minutes).strftime("%H:%M")


class ConstraintChecker:
    """
    Validates scheduling rules against a read-only snapshot of clients and therapists.
    Holds no state besides the snapshot indices, so one instance may be shared
    between threads.
    """

    def __init__(
        self,
        clients: Iterable[Client],
        therapists: Iterable[Therapist],
        rules: Optional[SchedulingRules] = None
    ):
        # Index entities for O(1) lookup
        self.clients: Dict[str, Client] = {c.id: c for c in clients}
        self.therapists: Dict[str, Therapist] = {t.id: t for t in therapists}
        self.rules = rules or DEFAULT_RULES

    # --- Public entry points ---

    def check_entry(self, entry: Session, context: Sequence[Session]) -> List[Violation]:
        """
        Validate one entry (new or edited) against the rest of the schedule.
        An entry in `context` sharing the entry's id is the pre-edit version and is ignored.
        """
        violations = self._check_entry_rules(entry, self.rules.operating_window)

        for other in context:
            if other.id == entry.id or other.day != entry.day:
                continue
            if not ranges_overlap(entry.start_minutes, entry.end_minutes, other.start_minutes, other.end_minutes):
                continue

            if other.therapist_id == entry.therapist_id:
                violations.append(Violation(
                    RuleId.THERAPIST_TIME_CONFLICT,
                    f"Therapist {self._therapist_label(entry.therapist_id)} is already booked from "
                    f"{other.time_label()} with {self._client_label(other.client_id)}.",
                    {"entry_id": entry.id, "conflicting_entry_id": other.id}
                ))
            if entry.client_id is not None and other.client_id == entry.client_id:
                violations.append(Violation(
                    RuleId.CLIENT_TIME_CONFLICT,
                    f"Client {self._client_label(entry.client_id)} is already scheduled with "
                    f"{self._therapist_label(other.therapist_id)} from {other.time_label()}.",
                    {"entry_id": entry.id, "conflicting_entry_id": other.id}
                ))

        return dedupe(violations)

    def check_schedule(
        self,
        schedule: Sequence[Session],
        on: date_type,
        operating_window: Optional[TimeWindow] = None,
        callouts: Sequence[Callout] = ()
    ) -> List[Violation]:
        """Validate a whole day's schedule, including the per-therapist and per-client aggregates."""
        window = operating_window or self.rules.operating_window
        day = DayOfWeek.from_date(on)
        active_callouts = [co for co in callouts if co.affects_date(on)]
        violations: List[Violation] = []

        for entry in schedule:
            if entry.day != day:
                violations.append(Violation(
                    RuleId.WRONG_DAY_FOR_ENTRY,
                    f"Entry for {self._client_label(entry.client_id)} with "
                    f"{self._therapist_label(entry.therapist_id)} is scheduled on {entry.day.value} "
                    f"but should be on {day.value}. (ID: {entry.id})",
                    {"entry_id": entry.id, "expected_day": day.value}
                ))

            prefix = self._entry_prefix(entry)
            for v in self._check_entry_rules(entry, window):
                violations.append(Violation(v.rule, f"{prefix}: {v.message}", v.detail))

            for co in active_callouts:
                if co.blocks(entry, on):
                    violations.append(self._callout_violation(entry, co))

        violations.extend(self._check_pair_conflicts(schedule))

        todays = [e for e in schedule if e.day == day]
        violations.extend(self._check_therapist_days(todays))
        violations.extend(self._check_client_days(todays, day, window, active_callouts))

        return dedupe(violations)

    # --- Entry rules ---

    def _check_entry_rules(self, entry: Session, window: TimeWindow) -> List[Violation]:
        """Rules that only need the entry itself and the reference data."""
        violations: List[Violation] = []
        start, end = entry.start_minutes, entry.end_minutes
        detail = {"entry_id": entry.id}

        if start >= end:
            violations.append(Violation(
                RuleId.INVALID_TIME_ORDER, "Session end time must be after start time.", detail
            ))

        violations.extend(self._check_duration(entry))

        therapist = self.therapists.get(entry.therapist_id)
        if therapist is None:
            violations.append(Violation(
                RuleId.THERAPIST_NOT_FOUND,
                f"Therapist (ID: {entry.therapist_id}) not found.",
                detail
            ))
        else:
            violation = self._check_availability(entry, therapist)
            if violation: violations.append(violation)

        if entry.is_billable and not window.contains(start, end):
            violations.append(Violation(
                RuleId.OUTSIDE_OPERATING_HOURS,
                f"Client-facing session ({entry.kind.value}) must be within company operating hours ({window}).",
                detail
            ))

        if entry.kind == SessionKind.DIRECT_THERAPY and entry.day.is_weekend:
            violations.append(Violation(
                RuleId.DIRECT_THERAPY_ON_WEEKEND,
                f"Direct therapy sessions cannot be scheduled on weekends ({entry.day.value}).",
                detail
            ))

        if entry.client_id is not None:
            client = self.clients.get(entry.client_id)
            if client is None:
                violations.append(Violation(
                    RuleId.CLIENT_NOT_FOUND, f"Client (ID: {entry.client_id}) not found.", detail
                ))
            elif therapist is not None:
                violation = self._check_credentials(entry, client, therapist)
                if violation: violations.append(violation)

        if entry.kind.is_allied_health and therapist is not None:
            violations.extend(self._check_allied_health(entry, therapist))

        return violations

    def _check_duration(self, entry: Session) -> List[Violation]:
        duration = entry.duration_minutes
        detail = {"entry_id": entry.id, "duration_minutes": duration}
        rules = self.rules

        if entry.kind == SessionKind.DIRECT_THERAPY:
            if duration < rules.direct_min_minutes:
                return [Violation(
                    RuleId.DIRECT_THERAPY_TOO_SHORT,
                    f"Direct therapy session must be at least {rules.direct_min_minutes} minutes.",
                    detail
                )]
            if duration > rules.direct_max_minutes:
                return [Violation(
                    RuleId.DIRECT_THERAPY_TOO_LONG,
                    f"Direct therapy session cannot exceed {rules.direct_max_minutes} minutes.",
                    detail
                )]
        elif entry.kind.is_allied_health:
            if duration <= 0:
                return [Violation(
                    RuleId.ALLIED_HEALTH_DURATION_INVALID,
                    f"{entry.kind.service.value} session must have positive duration.",
                    detail
                )]
        elif duration != rules.break_minutes:
            return [Violation(
                RuleId.BREAK_DURATION_INVALID,
                f"Indirect time must be exactly {rules.break_minutes} minutes.",
                detail
            )]
        return []

    def _check_availability(self, entry: Session, therapist: Therapist) -> Optional[Violation]:
        """Entry must fit ENTIRELY within one availability block for its day."""
        start, end = entry.start_minutes, entry.end_minutes

        if therapist.availability:
            blocks = therapist.blocks_for(entry.day)
            if any(b.contains(start, end) for b in blocks):
                return None
            windows = ", ".join(
                f"{b.start_time.strftime('%H:%M')} - {b.end_time.strftime('%H:%M')}" for b in blocks
            ) or "not working"
        else:
            fallback = self.rules.staff_fallback_window
            if fallback.contains(start, end):
                return None
            windows = str(fallback)

        return Violation(
            RuleId.OUTSIDE_THERAPIST_AVAILABILITY,
            f"Session for {therapist.name} ({entry.time_label()}) is outside their availability "
            f"on {entry.day.value} ({windows}).",
            {"entry_id": entry.id, "therapist_id": therapist.id}
        )

    def _check_credentials(self, entry: Session, client: Client, therapist: Therapist) -> Optional[Violation]:
        missing = [req for req in client.required_credentials if not therapist.holds(req)]
        if not missing:
            return None
        return Violation(
            RuleId.CREDENTIAL_MISMATCH,
            f"Therapist {therapist.name} does not meet credential requirements for "
            f"{client.name}: {', '.join(missing)}.",
            {"entry_id": entry.id, "missing": missing}
        )

    def _check_allied_health(self, entry: Session, therapist: Therapist) -> List[Violation]:
        service = entry.kind.service
        violations = []
        if service not in therapist.allied_health_services:
            violations.append(Violation(
                RuleId.ALLIED_HEALTH_SERVICE_NOT_ENABLED,
                f"Therapist {therapist.name} cannot provide {service.value} services.",
                {"entry_id": entry.id, "service": service.value}
            ))
        certification = self.rules.service_certifications.get(service)
        if certification and not therapist.holds(certification):
            violations.append(Violation(
                RuleId.ALLIED_HEALTH_CERTIFICATION_MISSING,
                f'Therapist {therapist.name} lacks qualification "{certification}" for {service.value}.',
                {"entry_id": entry.id, "service": service.value, "missing": [certification]}
            ))
        return violations

    # --- Schedule rules ---

    def _callout_violation(self, entry: Session, co: Callout) -> Violation:
        if co.entity_type == CalloutEntity.THERAPIST:
            who = f"therapist {self._therapist_label(co.entity_id)}"
        else:
            who = f"client {self._client_label(co.entity_id)}"
        return Violation(
            RuleId.SESSION_OVERLAPS_CALLOUT,
            f"Session for {self._therapist_label(entry.therapist_id)} with {self._client_label(entry.client_id)} "
            f"({entry.time_label()}, ID: {entry.id}) overlaps with {who}'s callout "
            f"({_hm(co.start_minutes)}-{_hm(co.end_minutes)}). Reason: {co.reason or 'N/A'}",
            {"entry_id": entry.id, "callout_id": co.id}
        )

    def _check_pair_conflicts(self, schedule: Sequence[Session]) -> List[Violation]:
        """Each overlapping pair sharing a therapist (or a client) on a day is reported once."""
        by_therapist = defaultdict(list)
        by_client = defaultdict(list)
        for entry in schedule:
            by_therapist[(entry.day, entry.therapist_id)].append(entry)
            if entry.client_id is not None:
                by_client[(entry.day, entry.client_id)].append(entry)

        violations = []
        for (day, therapist_id), entries in by_therapist.items():
            for a, b in self._overlapping_pairs(entries):
                violations.append(Violation(
                    RuleId.THERAPIST_TIME_CONFLICT,
                    f"Therapist {self._therapist_label(therapist_id)} is double-booked on {day.value}: "
                    f"{a.time_label()} ({a.id}) overlaps {b.time_label()} ({b.id}).",
                    {"entry_id": a.id, "conflicting_entry_id": b.id}
                ))
        for (day, client_id), entries in by_client.items():
            for a, b in self._overlapping_pairs(entries):
                violations.append(Violation(
                    RuleId.CLIENT_TIME_CONFLICT,
                    f"Client {self._client_label(client_id)} is double-booked on {day.value}: "
                    f"{a.time_label()} with {self._therapist_label(a.therapist_id)} ({a.id}) overlaps "
                    f"{b.time_label()} with {self._therapist_label(b.therapist_id)} ({b.id}).",
                    {"entry_id": a.id, "conflicting_entry_id": b.id}
                ))
        return violations

    @staticmethod
    def _overlapping_pairs(entries: List[Session]):
        ordered = sorted(entries, key=lambda e: (e.start_minutes, e.id))
        for i, a in enumerate(ordered):
            for b in ordered[i + 1:]:
                # Sorted by start: once b starts after a ends, later ones do too
                if b.start_minutes >= a.end_minutes:
                    break
                if ranges_overlap(a.start_minutes, a.end_minutes, b.start_minutes, b.end_minutes):
                    yield a, b

    def _check_therapist_days(self, todays: Sequence[Session]) -> List[Violation]:
        rules = self.rules
        sessions_by_therapist: Dict[str, List[Session]] = defaultdict(list)
        for entry in todays:
            sessions_by_therapist[entry.therapist_id].append(entry)

        violations = []
        for therapist_id, sessions in sessions_by_therapist.items():
            therapist = self.therapists.get(therapist_id)
            if therapist is None:
                continue
            detail = {"therapist_id": therapist_id}

            billable = [s for s in sessions if s.is_billable]
            breaks = [s for s in sessions if s.kind == SessionKind.INDIRECT]

            if len(billable) > rules.max_billable_sessions:
                violations.append(Violation(
                    RuleId.MAX_BILLABLE_SESSIONS_EXCEEDED,
                    f"Therapist {therapist.name} has {len(billable)} billable sessions (notes), "
                    f"above the limit of {rules.max_billable_sessions}.",
                    {**detail, "count": len(billable)}
                ))

            if therapist.holds(rules.supervisor_qualification) and not billable:
                violations.append(Violation(
                    RuleId.SUPERVISOR_NO_DIRECT_TIME,
                    f"Therapist {therapist.name} is a {rules.supervisor_qualification} "
                    f"but has no direct client time scheduled.",
                    detail
                ))

            if billable:
                violations.extend(self._check_break(therapist, breaks))
            elif breaks:
                violations.append(Violation(
                    RuleId.BREAK_WITHOUT_BILLABLE_WORK,
                    f"Therapist {therapist.name} has a break scheduled but no billable work.",
                    detail
                ))

        return violations

    def _check_break(self, therapist: Therapist, breaks: List[Session]) -> List[Violation]:
        rules = self.rules
        detail = {"therapist_id": therapist.id}

        if not breaks:
            return [Violation(
                RuleId.MISSING_BREAK,
                f"Therapist {therapist.name} has billable work but no break scheduled.",
                detail
            )]
        if len(breaks) > 1:
            return [Violation(
                RuleId.MULTIPLE_BREAKS,
                f"Therapist {therapist.name} has {len(breaks)} breaks. "
                f"Only one {rules.break_minutes}-minute break is allowed.",
                {**detail, "count": len(breaks)}
            )]

        violations = []
        lunch = breaks[0]
        if lunch.duration_minutes != rules.break_minutes:
            violations.append(Violation(
                RuleId.BREAK_DURATION_INVALID,
                f"Therapist {therapist.name}'s break is {lunch.duration_minutes} minutes. "
                f"It must be exactly {rules.break_minutes} minutes.",
                {**detail, "entry_id": lunch.id}
            ))

        latest = rules.latest_break_start
        if lunch.start_minutes < rules.break_window.start_minutes or lunch.start_minutes > latest:
            violations.append(Violation(
                RuleId.BREAK_OUTSIDE_WINDOW,
                f"Therapist {therapist.name}'s break ({lunch.time_label()}) is outside the core window "
                f"({rules.break_window}, start by {_hm(latest)}).",
                {**detail, "entry_id": lunch.id}
            ))
        return violations

    def _check_client_days(
        self,
        todays: Sequence[Session],
        day: DayOfWeek,
        window: TimeWindow,
        callouts: Sequence[Callout]
    ) -> List[Violation]:
        rules = self.rules
        violations = []

        for client in self.clients.values():
            client_sessions = [s for s in todays if s.client_id == client.id]

            if rules.high_scrutiny_credential in client.required_credentials:
                unique_therapists = {s.therapist_id for s in client_sessions}
                if len(unique_therapists) > rules.high_scrutiny_max_therapists:
                    violations.append(Violation(
                        RuleId.HIGH_SCRUTINY_THERAPIST_LIMIT,
                        f"{rules.high_scrutiny_credential} client {client.name} is scheduled with "
                        f"{len(unique_therapists)} unique therapists, exceeding the limit of "
                        f"{rules.high_scrutiny_max_therapists}.",
                        {"client_id": client.id, "count": len(unique_therapists)}
                    ))

            if not day.is_weekend:
                violations.extend(self._check_coverage(client, client_sessions, day, window, callouts))

        return violations

    def _check_coverage(
        self,
        client: Client,
        client_sessions: Sequence[Session],
        day: DayOfWeek,
        window: TimeWindow,
        callouts: Sequence[Callout]
    ) -> List[Violation]:
        """Sweep the operating window in fixed steps; every uncovered step is a gap."""
        step = self.rules.coverage_step_minutes
        unavailable = [
            (co.start_minutes, co.end_minutes)
            for co in callouts
            if co.entity_type == CalloutEntity.CLIENT and co.entity_id == client.id
        ]
        direct = [
            (s.start_minutes, s.end_minutes)
            for s in client_sessions
            if s.kind == SessionKind.DIRECT_THERAPY
        ]

        violations = []
        for step_start in range(window.start_minutes, window.end_minutes, step):
            step_end = min(step_start + step, window.end_minutes)

            if any(ranges_overlap(step_start, step_end, s, e) for s, e in unavailable):
                continue
            if any(ranges_overlap(step_start, step_end, s, e) for s, e in direct):
                continue

            violations.append(Violation(
                RuleId.CLIENT_COVERAGE_GAP,
                f"Client {client.name} has a direct therapy coverage gap on {day.value} "
                f"from {_hm(step_start)} to {_hm(step_end)}.",
                {"client_id": client.id, "start": _hm(step_start), "end": _hm(step_end)}
            ))
        return violations

    # --- Labels ---

    def _therapist_label(self, therapist_id: str) -> str:
        therapist = self.therapists.get(therapist_id)
        return therapist.name if therapist else therapist_id

    def _client_label(self, client_id: Optional[str]) -> str:
        if client_id is None:
            return "Indirect Time"
        client = self.clients.get(client_id)
        return client.name if client else client_id

    def _entry_prefix(self, entry: Session) -> str:
        return (
            f"Entry ({self._therapist_label(entry.therapist_id)} with {self._client_label(entry.client_id)} "
            f"at {entry.start.strftime('%H:%M')} on {entry.day.value}, ID: {entry.id})"
        )


# --- Functional API ---

def validate_entry(
    entry: Session,
    schedule_context: Sequence[Session],
    clients: Iterable[Client],
    therapists: Iterable[Therapist],
    rules: Optional[SchedulingRules] = None
) -> List[Violation]:
    """Fast feedback for a single add / move / edit of one session."""
    return ConstraintChecker(clients, therapists, rules).check_entry(entry, schedule_context)


def validate_schedule(
    schedule: Sequence[Session],
    clients: Iterable[Client],
    therapists: Iterable[Therapist],
    date: Optional[DateLike],
    operating_window: Optional[TimeWindow] = None,
    callouts: Sequence[Callout] = (),
    rules: Optional[SchedulingRules] = None
) -> List[Violation]:
    """Validate a whole day. An unresolvable date yields a single INVALID_SELECTED_DATE violation."""
    try:
        on = resolve_date(date)
    except InvalidDateError as e:
        return [Violation(RuleId.INVALID_SELECTED_DATE, "Selected date for validation is invalid.", {"error": str(e)})]
    return ConstraintChecker(clients, therapists, rules).check_schedule(schedule, on, operating_window, callouts or ())
