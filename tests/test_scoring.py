import pytest

from models import BaseSchedule, Callout, DayOfWeek, ServiceType
from scheduler.config import PenaltyWeights
from scheduler.rules import RuleId
from scheduler.scoring import FitnessScorer, score

from factories import MONDAY, SATURDAY, allied, direct, feasible_day, lunch, make_client, make_therapist, rules_of, t


def test_breakdown_of_feasible_day():
    clients, therapists, schedule = feasible_day()
    result = FitnessScorer(clients, therapists, MONDAY).breakdown(schedule)

    assert result.billable_minutes == 480
    assert result.idle_minutes == 30  # T3: break ends 11:30, next session 12:00
    assert result.idle_penalty == pytest.approx(15.0)
    assert all(not v.is_hard for v in result.violations)
    assert result.fitness == pytest.approx(480 - 15 - result.violation_penalty)


def test_team_misalignment_is_a_small_penalty():
    clients = [make_client("C3", team_id="South")]
    therapists = [
        make_therapist("T1", qualifications=["RBT"], team_id="North"),
        make_therapist("T3", qualifications=["RBT"], team_id="South"),
    ]
    _, _, schedule = feasible_day()
    result = FitnessScorer(clients, therapists, MONDAY).breakdown(schedule)

    assert result.rule_counts() == {RuleId.TEAM_MISALIGNMENT: 1}
    assert result.fitness == pytest.approx(480 - 15 - 10)


def test_hard_violation_costs_more_than_the_minutes_it_adds():
    clients, therapists, schedule = feasible_day()
    scorer = FitnessScorer(clients, therapists, MONDAY)
    clash = direct("s9", "T1", "C3", "10:00", "11:00")

    assert scorer.calculate_fitness(schedule + [clash]) < scorer.calculate_fitness(schedule)


def test_allied_health_need_reward(roster):
    clients, therapists = roster
    scorer = FitnessScorer(clients, therapists, MONDAY)

    without = scorer.breakdown([])
    assert RuleId.UNMET_ALLIED_HEALTH_NEED in rules_of(without.violations)
    assert without.satisfied_needs == 0

    slp = allied("s1", "T2", "C2", "13:00", "13:30", ServiceType.SLP)
    with_session = scorer.breakdown([slp])
    assert with_session.satisfied_needs == 1
    assert with_session.allied_health_reward == pytest.approx(50.0)
    assert RuleId.UNMET_ALLIED_HEALTH_NEED not in rules_of(with_session.violations)


def test_base_schedule_deviation():
    clients, therapists, schedule = feasible_day()
    planned = direct("p1", "T1", "C3", "09:00", "12:00")
    moved = direct("p2", "T3", "C3", "09:00", "10:00")
    template = BaseSchedule(id="base", name="Monday plan", sessions=[planned, moved])

    result = FitnessScorer(clients, therapists, MONDAY, base_schedule=template).breakdown(schedule)
    deviations = [v for v in result.violations if v.rule == RuleId.BASE_SCHEDULE_DEVIATION]
    assert [v.detail["entry_id"] for v in deviations] == ["p2"]


def test_base_schedule_ignored_on_other_days_and_under_callouts():
    clients, therapists, schedule = feasible_day()
    missing = direct("p1", "T1", "C3", "13:00", "14:00")

    tuesday_only = BaseSchedule(id="b1", name="Tuesday", applies_to_days=[DayOfWeek.TUESDAY], sessions=[missing])
    result = FitnessScorer(clients, therapists, MONDAY, base_schedule=tuesday_only).breakdown(schedule)
    assert RuleId.BASE_SCHEDULE_DEVIATION not in rules_of(result.violations)

    callout = Callout(
        id="co1", entity_type="therapist", entity_id="T1", start_date=MONDAY, end_date=MONDAY,
        start_time=t("13:00"), end_time=t("14:00")
    )
    anyday = BaseSchedule(id="b2", name="Every day", sessions=[missing])
    result = FitnessScorer(clients, therapists, MONDAY, [callout], base_schedule=anyday).breakdown(schedule)
    assert RuleId.BASE_SCHEDULE_DEVIATION not in rules_of(result.violations)


def test_weight_overrides_merge_with_defaults():
    weights = PenaltyWeights(penalties={RuleId.TEAM_MISALIGNMENT: 100})
    assert weights.weight_for(RuleId.TEAM_MISALIGNMENT) == 100
    assert weights.weight_for(RuleId.MISSING_BREAK) == PenaltyWeights().weight_for(RuleId.MISSING_BREAK)
    assert set(weights.penalties) == set(RuleId)


def test_empty_schedule_scores_zero():
    assert score([], [], [], MONDAY) == 0

    # No direct coverage is owed on a weekend and C3 has no allied-health needs
    clients, therapists, _ = feasible_day()
    assert score([], clients, therapists, SATURDAY) == 0


def test_empty_schedule_pays_only_for_what_it_misses(roster):
    clients, therapists = roster
    # C2's twice-weekly SLP is not due on Saturday
    assert score([], clients, therapists, SATURDAY) == 0

    # On Monday every client-minute is a gap and C2's SLP is unmet
    monday = FitnessScorer(clients, therapists, MONDAY).breakdown([])
    assert monday.billable_minutes == 0
    assert set(rules_of(monday.violations)) == {RuleId.CLIENT_COVERAGE_GAP, RuleId.UNMET_ALLIED_HEALTH_NEED}
    assert monday.fitness == -monday.violation_penalty


def test_score_function_matches_scorer(roster):
    clients, therapists = roster
    schedule = [direct("s1", "T1", "C1", "09:00", "11:00"), lunch("b1", "T1", "12:00", "12:30")]
    expected = FitnessScorer(clients, therapists, MONDAY).calculate_fitness(schedule)
    assert score(schedule, clients, therapists, MONDAY) == expected
