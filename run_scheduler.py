"""
Main Execution Script for the Therapy Staff Scheduler.
Loads (or generates) one day's scenario, runs the optimizer, prints a report
and exports the result as JSON.
"""

import os
import sys
import logging
from datetime import date
from typing import Any, Dict, Optional
import json

# Add current directory to path so imports work
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from generators.data_factory import ScenarioGenerator
from scheduler.config import RunConfig, SchedulingRules
from scheduler.orchestrator import run, RunResult
from models import BaseSchedule, Callout, Client, Therapist, parse_session

logger = logging.getLogger("Main")

# --- CONFIGURATION ---
SCENARIO_FILENAME = "scenario.json"
OUTPUT_FILENAME = "schedule_result.json"
USE_CACHE = True  # Set to False to always generate a fresh scenario
GENERATOR_SEED = 42
RUN_DATE = date(2025, 9, 1)  # A Monday
RUN_CONFIG = RunConfig(
    population_size=40,
    max_generations=60,
    mutation_rate=0.1,
    random_seed=7,
    stall_generations=20
)
# ---------------------


def save_scenario(data: Dict[str, Any], filename: str) -> None:
    """Save a scenario so later runs can replay it."""
    serializable = {}
    for key, val in data.items():
        if isinstance(val, list):
            serializable[key] = [item.model_dump(mode='json') for item in val]
        elif isinstance(val, date):
            serializable[key] = val.isoformat()
        elif val is not None:
            serializable[key] = val.model_dump(mode='json')

    with open(filename, 'w') as f:
        json.dump(serializable, f, indent=2)
    logger.info(f"Saved scenario to {filename}")


def load_scenario(filename: str) -> Optional[Dict[str, Any]]:
    """
    Load a JSON scenario and rebuild the Pydantic objects.
    Returns None when the file is missing or unusable.
    """
    try:
        with open(filename, 'r') as f:
            data = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        logger.warning(f"Scenario file {filename} not found or invalid. Falling back to Generator.")
        return None

    try:
        scenario = {
            "date": data.get("date"),
            "clients": [Client(**item) for item in data.get('clients', [])],
            "therapists": [Therapist(**item) for item in data.get('therapists', [])],
            "callouts": [Callout(**item) for item in data.get('callouts', [])],
            "seed_schedule": [parse_session(item) for item in data.get('seed_schedule', [])],
            "base_schedule": BaseSchedule(**data['base_schedule']) if data.get('base_schedule') else None,
            "rules": SchedulingRules(**data['rules']) if data.get('rules') else None,
            "run_config": RunConfig(**data['run_config']) if data.get('run_config') else None,
        }
    except (TypeError, ValueError) as e:
        logger.error(f"Failed to load scenario: {e}")
        return None

    logger.info(
        f"Scenario loaded: {len(scenario['clients'])} clients, {len(scenario['therapists'])} therapists, "
        f"{len(scenario['callouts'])} callouts."
    )
    return scenario


def export_result(result: RunResult, filename: str) -> None:
    logger.info(f"Exporting result to {filename}...")
    with open(filename, 'w') as f:
        json.dump(result.to_dict(), f, indent=2, allow_nan=False)


def print_report(result: RunResult) -> None:
    print("\n" + "=" * 50)
    print("FINAL EXECUTION REPORT")
    print("=" * 50)
    print(f"Status:       {result.status.value}")
    print(f"Summary:      {result.status_message}")
    print(f"Generations:  {result.generations_run}")
    print(f"Best fitness: {result.best_fitness:.2f}")

    if result.best_schedule:
        print("\nSCHEDULE")
        for s in sorted(result.best_schedule, key=lambda s: (s.therapist_id, s.start)):
            print(f"  {s.therapist_id:<10} {s.time_label()}  {s.kind.value:<18} {s.client_id or '-'}")

    if result.remaining_violations:
        print(f"\nREMAINING VIOLATIONS ({len(result.remaining_violations)}, showing up to 20)")
        for v in result.remaining_violations[:20]:
            print(f"  [{v.severity.value.upper()}] {v.rule.value}: {v.message}")


def main(scenario_path: str = SCENARIO_FILENAME, output_path: str = OUTPUT_FILENAME) -> RunResult:
    logger.info("Starting Therapy Staff Scheduler...")

    # --- PHASE 1: DATA ACQUISITION (Cache vs. Generator) ---
    scenario = load_scenario(scenario_path) if USE_CACHE else None

    if not scenario:
        logger.info("--- Phase 1: Generating synthetic scenario ---")
        generator = ScenarioGenerator(seed=GENERATOR_SEED)
        scenario = generator.generate_scenario(RUN_DATE)
        scenario["date"] = RUN_DATE
        save_scenario(scenario, scenario_path)

    # --- PHASE 2: OPTIMIZATION ---
    logger.info("--- Phase 2: Population Optimizer ---")
    result = run(
        scenario["clients"],
        scenario["therapists"],
        scenario.get("date") or RUN_DATE,
        scenario.get("callouts", []),
        scenario.get("run_config") or RUN_CONFIG,
        seed_schedule=scenario.get("seed_schedule") or None,
        base_schedule=scenario.get("base_schedule"),
        rules=scenario.get("rules")
    )

    # --- PHASE 3: REPORTING ---
    print_report(result)

    # --- PHASE 4: EXPORT ---
    export_result(result, output_path)
    return result


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )
    main()
