from datetime import timedelta

from models import AlliedHealthNeed, Callout, DayOfWeek, ServiceType, SessionKind
from scheduler.config import DEFAULT_RULES
from scheduler.demand import (
    SessionDemand,
    candidate_starts,
    demand_is_covered,
    eligible_therapists,
    expand_demands,
    free_segments,
    therapist_windows,
    tile_segment,
)

from factories import MONDAY, SATURDAY, allied, direct, make_client, make_therapist, t


def test_free_segments_cut_out_busy_spans():
    assert free_segments((540, 1020), []) == [(540, 1020)]
    assert free_segments((540, 1020), [(540, 600), (720, 780)]) == [(600, 720), (780, 1020)]
    assert free_segments((540, 1020), [(500, 1100)]) == []


def test_tile_segment_near_equal_blocks():
    assert tile_segment((540, 1020), DEFAULT_RULES) == [(540, 660), (660, 780), (780, 900), (900, 1020)]
    assert tile_segment((540, 670), DEFAULT_RULES) == [(540, 600), (600, 670)]
    assert tile_segment((540, 580), DEFAULT_RULES) == []


def test_tiles_respect_direct_therapy_bounds():
    for length in range(45, 481, 5):
        blocks = tile_segment((540, 540 + length), DEFAULT_RULES)
        assert sum(e - s for s, e in blocks) == length
        assert all(DEFAULT_RULES.direct_min_minutes <= e - s <= DEFAULT_RULES.direct_max_minutes for s, e in blocks)


def test_expand_demands_weekday(roster):
    clients, _ = roster
    demands = expand_demands(clients, MONDAY, [], DEFAULT_RULES)

    direct_demands = [d for d in demands if d.kind == SessionKind.DIRECT_THERAPY]
    assert len(direct_demands) == 12  # four 2-hour blocks for each of three clients
    slp = [d for d in demands if d.kind == SessionKind.ALLIED_HEALTH_SLP]
    assert slp == [SessionDemand("C2", SessionKind.ALLIED_HEALTH_SLP, 30, (780, 900))]


def test_expand_demands_skips_client_callout(roster):
    clients, _ = roster
    callout = Callout(
        id="co1", entity_type="client", entity_id="C1", start_date=MONDAY, end_date=MONDAY,
        start_time=t("09:00"), end_time=t("10:00")
    )
    demands = [d for d in expand_demands(clients, MONDAY, [callout], DEFAULT_RULES) if d.client_id == "C1"]
    assert sum(d.duration_minutes for d in demands) == 420
    assert min(d.preferred_window[0] for d in demands) == 600


def test_no_direct_demands_on_weekend(roster):
    clients, _ = roster
    # C2's twice-weekly SLP falls on Monday and Wednesday
    assert expand_demands(clients, SATURDAY, [], DEFAULT_RULES) == []

    saturday_slp = AlliedHealthNeed(
        service=ServiceType.SLP, sessions_per_week=1, duration_minutes=30,
        specific_days=[DayOfWeek.SATURDAY]
    )
    weekender = make_client("C4", needs=[saturday_slp])
    demands = expand_demands(clients + [weekender], SATURDAY, [], DEFAULT_RULES)
    assert [(d.client_id, d.kind) for d in demands] == [("C4", SessionKind.ALLIED_HEALTH_SLP)]


def test_weekly_need_only_on_its_due_days(roster):
    clients, _ = roster
    wednesday = expand_demands(clients, MONDAY + timedelta(days=2), [], DEFAULT_RULES)
    tuesday = expand_demands(clients, MONDAY + timedelta(days=1), [], DEFAULT_RULES)
    assert any(d.kind == SessionKind.ALLIED_HEALTH_SLP for d in wednesday)
    assert not any(d.kind == SessionKind.ALLIED_HEALTH_SLP for d in tuesday)


def test_eligible_therapists(roster):
    clients, therapists = roster
    by_id = {c.id: c for c in clients}

    medicaid = eligible_therapists(SessionKind.DIRECT_THERAPY, by_id["C1"], therapists, DayOfWeek.MONDAY, DEFAULT_RULES)
    assert [th.id for th in medicaid] == ["T1"]

    slp = eligible_therapists(SessionKind.ALLIED_HEALTH_SLP, by_id["C2"], therapists, DayOfWeek.MONDAY, DEFAULT_RULES)
    assert [th.id for th in slp] == ["T2"]

    # Declared weekday shifts only, except T2 who falls back to the staff window
    weekend = eligible_therapists(SessionKind.DIRECT_THERAPY, by_id["C3"], therapists, DayOfWeek.SATURDAY, DEFAULT_RULES)
    assert [th.id for th in weekend] == ["T2"]


def test_therapist_windows_clip():
    therapist = make_therapist("T1")
    assert therapist_windows(therapist, DayOfWeek.MONDAY, DEFAULT_RULES) == [(525, 1035)]
    assert therapist_windows(therapist, DayOfWeek.MONDAY, DEFAULT_RULES, clip=DEFAULT_RULES.break_window) == [(660, 840)]
    assert therapist_windows(therapist, DayOfWeek.SUNDAY, DEFAULT_RULES) == []


def test_candidate_starts_prefer_window():
    windows = [(540, 1020)]
    assert candidate_starts(60, windows, preferred=(600, 690)) == [600, 615, 630]
    # A preferred window outside availability falls back to every start
    fallback = candidate_starts(60, windows, preferred=(1200, 1300))
    assert fallback[0] == 540 and fallback[-1] == 960
    assert candidate_starts(0, windows) == []


def test_demand_is_covered():
    block = SessionDemand("C1", SessionKind.DIRECT_THERAPY, 120, (540, 660))
    assert demand_is_covered(block, [direct("s1", "T1", "C1", "10:00", "11:00")])
    assert not demand_is_covered(block, [direct("s1", "T1", "C1", "11:00", "12:00")])
    assert not demand_is_covered(block, [direct("s1", "T1", "C2", "09:00", "11:00")])

    slp = SessionDemand("C1", SessionKind.ALLIED_HEALTH_SLP, 30, (780, 900))
    assert demand_is_covered(slp, [allied("s2", "T2", "C1", "09:00", "09:30")])
