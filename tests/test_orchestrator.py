import json
import logging
import math
from itertools import combinations

import pytest

from models import ranges_overlap
from scheduler.config import RunConfig
from scheduler.constraints import validate_schedule
from scheduler.orchestrator import CancellationToken, RunResult, RunStatus, run, submit_run
from scheduler.rules import RuleId, Violation, hard_violations
from scheduler.scoring import score

from factories import MONDAY, feasible_day


@pytest.fixture
def config():
    return RunConfig(population_size=8, max_generations=4, parallelism="none", random_seed=21)


def test_empty_therapists_is_fatal(roster, config):
    clients, _ = roster
    result = run(clients, [], MONDAY, [], config)

    assert result.status == RunStatus.FATAL
    assert result.generations_run == 0
    assert result.best_schedule is None
    assert result.remaining_violations == []
    assert not result.success
    assert "therapists" in result.status_message


def test_fatal_abort_is_logged(roster, config, caplog):
    clients, _ = roster
    with caplog.at_level(logging.INFO, logger="scheduler"):
        run(clients, [], MONDAY, [], config)
    assert "Generation aborted: Cannot run: no therapists supplied." in caplog.messages


def test_empty_clients_is_fatal(roster, config):
    _, therapists = roster
    result = run([], therapists, MONDAY, [], config)
    assert result.status == RunStatus.FATAL
    assert result.generations_run == 0


@pytest.mark.parametrize("bad_date", ["2025-13-45", None, 20250901])
def test_unresolvable_date_is_fatal(roster, config, bad_date):
    clients, therapists = roster
    result = run(clients, therapists, bad_date, [], config)
    assert result.status == RunStatus.FATAL
    assert result.best_schedule is None


def test_generation_run_reports_validated_schedule(roster, config):
    clients, therapists = roster
    result = run(clients, therapists, "2025-09-01", [], config)

    assert result.status == RunStatus.COMPLETED
    assert result.generations_run == 4
    assert result.best_schedule
    assert result.remaining_violations == validate_schedule(result.best_schedule, clients, therapists, MONDAY)
    assert result.success == (hard_violations(result.remaining_violations) == [])
    assert result.best_fitness == result.statistics["best_fitness"]


def test_optimization_run_never_loses_to_its_seed(config):
    clients, therapists, schedule = feasible_day()
    seeded = config.model_copy(update={"seed_fraction": 1.0})
    result = run(clients, therapists, MONDAY, [], seeded, seed_schedule=schedule)

    assert result.best_fitness >= score(schedule, clients, therapists, MONDAY)
    assert result.success
    assert result.status_message.startswith("Optimization")


@pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
def test_successful_run_has_no_double_bookings(config, seed):
    clients, therapists, _ = feasible_day()
    result = run(clients, therapists, MONDAY, [], config.model_copy(update={"random_seed": seed}))

    assert result.status == RunStatus.COMPLETED
    if not result.success:
        return
    for a, b in combinations(result.best_schedule, 2):
        if not ranges_overlap(a.start_minutes, a.end_minutes, b.start_minutes, b.end_minutes):
            continue
        assert a.therapist_id != b.therapist_id
        assert a.client_id is None or a.client_id != b.client_id


def test_cancelled_run_keeps_best_so_far(roster, config):
    clients, therapists = roster
    token = CancellationToken()
    token.cancel()

    result = run(clients, therapists, MONDAY, [], config, cancel_token=token)
    assert result.status == RunStatus.CANCELLED
    assert result.generations_run == 0
    assert result.best_schedule is not None


def test_progress_reported_each_generation(roster, config):
    clients, therapists = roster
    seen = []
    run(clients, therapists, MONDAY, [], config, on_progress=lambda g, best: seen.append(g))
    assert seen == [0, 1, 2, 3]


def test_result_serializes_to_json(roster, config):
    clients, therapists = roster
    result = run(clients, therapists, MONDAY, [], config)
    payload = json.loads(json.dumps(result.to_dict()))

    assert payload["status"] == "completed"
    assert len(payload["best_schedule"]) == len(result.best_schedule)
    assert len(payload["remaining_violations"]) == len(result.remaining_violations)

    gap = Violation(RuleId.CLIENT_COVERAGE_GAP, "C1 uncovered 09:00-09:15", {"client_id": "C1"})
    fatal = RunResult.fatal("nothing to do")
    fatal.remaining_violations.append(gap)
    payload = json.loads(json.dumps(fatal.to_dict(), allow_nan=False))
    assert payload["best_schedule"] is None
    assert math.isinf(fatal.best_fitness)
    assert payload["best_fitness"] is None
    assert payload["remaining_violations"] == [{
        "rule_id": "CLIENT_COVERAGE_GAP",
        "severity": "hard",
        "message": "C1 uncovered 09:00-09:15",
        "detail": {"client_id": "C1"},
    }]
    assert fatal.hard_violations == [gap]


@pytest.mark.integration
def test_submit_run_completes_in_background(roster, config):
    clients, therapists = roster
    handle = submit_run(clients, therapists, MONDAY, [], config)
    result = handle.result(timeout=60)

    assert handle.done()
    assert result.status == RunStatus.COMPLETED
    assert result.generations_run == 4


@pytest.mark.integration
def test_submit_run_can_be_cancelled(roster):
    clients, therapists = roster
    long_run = RunConfig(population_size=4, max_generations=100000, parallelism="none", random_seed=1)
    handle = submit_run(clients, therapists, MONDAY, [], long_run)
    handle.cancel()
    result = handle.result(timeout=120)

    assert handle.cancelled
    assert result.status == RunStatus.CANCELLED
    assert result.best_schedule is not None
    assert result.generations_run < 100000
