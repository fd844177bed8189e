from datetime import timedelta

import pytest
from pydantic import ValidationError

from models import (
    AlliedHealthNeed,
    BaseSchedule,
    Callout,
    DayOfWeek,
    IndirectSession,
    ServiceType,
    SessionKind,
    TherapySession,
    TimeWindow,
    parse_session,
    replace_session,
    remove_session,
    sessions_for_client,
    sessions_for_therapist,
)

from factories import MONDAY, SATURDAY, direct, lunch, make_client, make_therapist, t


def test_day_of_week_from_date():
    assert DayOfWeek.from_date(MONDAY) == DayOfWeek.MONDAY
    assert DayOfWeek.from_date(SATURDAY) == DayOfWeek.SATURDAY
    assert DayOfWeek.SATURDAY.is_weekend
    assert not DayOfWeek.FRIDAY.is_weekend


def test_time_window_rejects_inverted_range():
    with pytest.raises(ValidationError):
        TimeWindow(start=t("12:00"), end=t("11:00"))
    window = TimeWindow(start=t("09:00"), end=t("17:00"))
    assert window.duration_minutes == 480
    assert window.contains(540, 600)
    assert not window.contains(530, 600)
    assert str(window) == "09:00 - 17:00"


def test_indirect_session_cannot_carry_a_client():
    with pytest.raises(ValidationError):
        IndirectSession(
            id="b1", therapist_id="T1", day=DayOfWeek.MONDAY,
            start=t("12:00"), end=t("12:30"), client_id="C1"
        )
    assert lunch("b1", "T1", "12:00", "12:30").client_id is None


def test_therapy_session_requires_a_client():
    with pytest.raises(ValidationError):
        TherapySession(id="s1", therapist_id="T1", day=DayOfWeek.MONDAY, start=t("09:00"), end=t("10:00"))
    with pytest.raises(ValidationError):
        TherapySession(
            id="s1", kind=SessionKind.INDIRECT, therapist_id="T1", client_id="C1",
            day=DayOfWeek.MONDAY, start=t("09:00"), end=t("10:00")
        )


def test_parse_session_picks_variant_by_kind():
    indirect = parse_session({
        "id": "b1", "kind": "indirect", "therapist_id": "T1", "client_id": None,
        "day": "Monday", "start": "12:00", "end": "12:30"
    })
    assert isinstance(indirect, IndirectSession)

    slp = parse_session({
        "id": "s1", "kind": "allied_health_slp", "therapist_id": "T2", "client_id": "C2",
        "day": "Monday", "start": "13:00", "end": "13:30"
    })
    assert isinstance(slp, TherapySession)
    assert slp.kind.service == ServiceType.SLP
    assert slp.duration_minutes == 30
    assert slp.is_billable

    with pytest.raises(ValidationError):
        parse_session({
            "id": "s2", "kind": "direct_therapy", "therapist_id": "T1", "client_id": None,
            "day": "Monday", "start": "09:00", "end": "10:00"
        })


def test_session_allows_inverted_times_for_the_validator_to_report():
    session = direct("s1", "T1", "C1", "11:00", "10:00")
    assert session.duration_minutes == -60


def test_schedule_helpers_replace_by_id():
    s1 = direct("s1", "T1", "C1", "09:00", "10:00")
    s2 = direct("s2", "T2", "C2", "09:00", "10:00")
    moved = s1.model_copy(update={"start": t("10:00"), "end": t("11:00")})

    schedule = replace_session([s1, s2], moved)
    assert schedule == [moved, s2]
    assert remove_session(schedule, "s2") == [moved]
    assert sessions_for_therapist(schedule, "T2") == [s2]
    assert sessions_for_client(schedule, "C1") == [moved]

    with pytest.raises(KeyError):
        replace_session([s2], moved)


def test_callout_rejects_inverted_dates():
    with pytest.raises(ValidationError):
        Callout(
            id="co1", entity_type="therapist", entity_id="T1",
            start_date=MONDAY, end_date=MONDAY - timedelta(days=1),
            start_time=t("09:00"), end_time=t("10:00")
        )


def test_callout_blocks_matching_sessions_only():
    callout = Callout(
        id="co1", entity_type="client", entity_id="C1",
        start_date=MONDAY, end_date=MONDAY,
        start_time=t("09:00"), end_time=t("10:00"), reason="Sick"
    )
    assert callout.blocks(direct("s1", "T1", "C1", "09:30", "10:30"), MONDAY)
    assert not callout.blocks(direct("s2", "T1", "C2", "09:30", "10:30"), MONDAY)
    assert not callout.blocks(direct("s3", "T1", "C1", "10:00", "11:00"), MONDAY)
    assert not callout.blocks(lunch("b1", "T1", "09:00", "09:30"), MONDAY)
    assert not callout.affects_date(SATURDAY)


def test_client_and_therapist_dedupe_tags():
    client = make_client("C1", credentials=["MD_MEDICAID", "MD_MEDICAID", "TRICARE"])
    assert client.required_credentials == ["MD_MEDICAID", "TRICARE"]

    therapist = make_therapist("T1", qualifications=["RBT", "RBT"])
    assert therapist.qualifications == ["RBT"]
    assert therapist.holds("RBT")
    assert len(therapist.blocks_for(DayOfWeek.MONDAY)) == 1
    assert therapist.blocks_for(DayOfWeek.SUNDAY) == []


def test_allied_health_need_specific_days():
    need = AlliedHealthNeed(
        service=ServiceType.OT, sessions_per_week=1, duration_minutes=45,
        specific_days=[DayOfWeek.TUESDAY]
    )
    client = make_client("C1", needs=[need])
    assert client.needs_on(DayOfWeek.TUESDAY) == [need]
    assert client.needs_on(DayOfWeek.MONDAY) == []

    with pytest.raises(ValidationError):
        AlliedHealthNeed(service=ServiceType.OT, sessions_per_week=0, duration_minutes=45)


@pytest.mark.parametrize("per_week, expected", [
    (1, ["Monday"]),
    (2, ["Monday", "Wednesday"]),
    (3, ["Monday", "Tuesday", "Thursday"]),
    (5, ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]),
    (6, ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]),
])
def test_weekly_need_spread_over_the_week(per_week, expected):
    need = AlliedHealthNeed(service=ServiceType.SLP, sessions_per_week=per_week, duration_minutes=30)
    assert [d.value for d in need.due_days()] == expected

    client = make_client("C1", needs=[need])
    due = sum(1 for day in DayOfWeek if client.needs_on(day))
    assert due == per_week


def test_base_schedule_applies_to_days():
    anyday = BaseSchedule(id="b", name="Any day")
    assert anyday.applies_to(DayOfWeek.SUNDAY)

    tuesday = BaseSchedule(id="b2", name="Tuesday", applies_to_days=[DayOfWeek.TUESDAY])
    assert tuesday.applies_to(DayOfWeek.TUESDAY)
    assert not tuesday.applies_to(DayOfWeek.MONDAY)
