"""
The Population Optimization Engine.

This module implements the core "Solver" logic as a genetic algorithm:
1. Seeding - generation zero is built by placing every session demand
   (partly on top of a caller-supplied seed schedule).
2. Evaluation - candidates are scored in parallel by the FitnessScorer.
3. Breeding - roulette selection, per-client crossover, mutation, and a
   repair step that keeps exactly one break per working therapist.
4. Elitism - the best candidates survive unchanged into the next generation.

The run can be cancelled between generations; the best-so-far schedule survives.
"""

import logging
import random
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from contextlib import contextmanager
from datetime import date as date_type
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from models import (
    BaseSchedule,
    Callout,
    CalloutEntity,
    Client,
    DayOfWeek,
    IndirectSession,
    Session,
    SessionKind,
    Therapist,
    TherapySession,
    from_minutes,
    ranges_overlap,
)
from .config import PenaltyWeights, RunConfig, SchedulingRules, DEFAULT_RULES
from .demand import (
    SessionDemand,
    Span,
    candidate_starts,
    demand_is_covered,
    eligible_therapists,
    expand_demands,
    therapist_windows,
)
from .scoring import FitnessScorer, MIN_FITNESS
from .state import OptimizerState

logger = logging.getLogger(__name__)

Candidate = List[Session]
ProgressCallback = Callable[[int, float], None]


# --- Process-pool plumbing ---
# Worker processes get the scorer once, at start-up, instead of once per candidate.

_worker_scorer: Optional[FitnessScorer] = None


def _init_worker(scorer: FitnessScorer) -> None:
    global _worker_scorer
    _worker_scorer = scorer


def _evaluate_in_worker(schedule: Candidate) -> float:
    return safe_fitness(_worker_scorer, schedule)


def safe_fitness(scorer: FitnessScorer, schedule: Candidate) -> float:
    """Score one candidate. A failing evaluation is logged and scored as the minimum."""
    try:
        return scorer.calculate_fitness(schedule)
    except Exception:
        logger.warning(f"Fitness evaluation failed for a candidate of {len(schedule)} sessions", exc_info=True)
        return MIN_FITNESS


class PopulationOptimizer:
    """
    Main optimization engine.
    Ingests Demand (Clients) and Supply (Therapists) for one day, outputs the best schedule found.
    """

    def __init__(
        self,
        clients: Sequence[Client],
        therapists: Sequence[Therapist],
        on: date_type,
        callouts: Sequence[Callout] = (),
        config: Optional[RunConfig] = None,
        seed_schedule: Optional[Sequence[Session]] = None,
        base_schedule: Optional[BaseSchedule] = None,
        rules: Optional[SchedulingRules] = None,
        weights: Optional[PenaltyWeights] = None
    ):
        self.clients = list(clients)
        self.therapists = list(therapists)
        self.on = on
        self.day = DayOfWeek.from_date(on)
        self.callouts = [co for co in callouts if co.affects_date(on)]
        self.config = config or RunConfig()
        self.rules = rules or DEFAULT_RULES
        self.seed_schedule: Candidate = list(seed_schedule or [])

        # Initialize Helpers
        self.scorer = FitnessScorer(self.clients, self.therapists, on, self.callouts, base_schedule, self.rules, weights)
        self.state = OptimizerState()
        self.rng = random.Random(self.config.random_seed)

        # Lookups
        self.client_map: Dict[str, Client] = {c.id: c for c in self.clients}
        self.therapist_map: Dict[str, Therapist] = {t.id: t for t in self.therapists}
        self.demands: List[SessionDemand] = expand_demands(self.clients, on, self.callouts, self.rules)

        self._run_tag = f"{self.rng.getrandbits(32):08x}"
        self._next_id = 0

    # --- Main loop ---

    def run(self, cancel_token=None, on_progress: Optional[ProgressCallback] = None) -> OptimizerState:
        """
        Execute the evolutionary loop.
        `cancel_token` is anything with a boolean `cancelled` attribute; it is checked between generations.
        """
        config = self.config
        logger.info(
            f"Starting optimizer for {self.on} ({len(self.clients)} clients, {len(self.therapists)} therapists, "
            f"{len(self.demands)} demands, population {config.population_size}, {config.max_generations} generations)"
        )

        population = self.create_initial_population()

        with self._executor() as executor:
            for generation in range(config.max_generations):
                if cancel_token is not None and cancel_token.cancelled:
                    logger.info(f"Run cancelled before generation {generation}")
                    self.state.cancelled = True
                    break

                ranked = self.evaluate_population(population, executor)
                fitnesses = [f for _, f in ranked]
                failed = sum(1 for f in fitnesses if f == MIN_FITNESS)
                record = self.state.record_generation(generation, fitnesses, failed)
                if self.state.consider(ranked[0][0], ranked[0][1], generation):
                    logger.debug(f"Generation {generation}: new best fitness {ranked[0][1]:.2f}")

                if on_progress is not None:
                    on_progress(generation, record.best_fitness)

                if config.stall_generations and self.state.generations_since_improvement() >= config.stall_generations:
                    logger.info(f"No improvement for {config.stall_generations} generations, stopping early")
                    self.state.stalled = True
                    break

                population = self.next_generation(ranked)

            if self.state.best_schedule is None:
                # Nothing was evaluated (zero generations or cancelled up front)
                ranked = self.evaluate_population(population, executor)
                self.state.consider(ranked[0][0], ranked[0][1])

        logger.info(
            f"Optimizer finished after {self.state.generations_run} generations. "
            f"Best fitness: {self.state.best_fitness:.2f}"
        )
        return self.state

    @contextmanager
    def _executor(self) -> Iterator[Optional[Executor]]:
        config = self.config
        if config.parallelism == "none" or config.max_workers <= 1:
            yield None
        elif config.parallelism == "process":
            with ProcessPoolExecutor(
                max_workers=config.max_workers, initializer=_init_worker, initargs=(self.scorer,)
            ) as executor:
                yield executor
        else:
            with ThreadPoolExecutor(max_workers=config.max_workers, thread_name_prefix="fitness") as executor:
                yield executor

    def evaluate_population(
        self,
        population: List[Candidate],
        executor: Optional[Executor] = None
    ) -> List[Tuple[Candidate, float]]:
        """Score every candidate and return (candidate, fitness) pairs, best first."""
        if executor is None:
            scores = [safe_fitness(self.scorer, c) for c in population]
        elif isinstance(executor, ProcessPoolExecutor):
            chunk = max(1, len(population) // (self.config.max_workers * 4))
            scores = list(executor.map(_evaluate_in_worker, population, chunksize=chunk))
        else:
            scores = list(executor.map(lambda c: safe_fitness(self.scorer, c), population))

        ranked = list(zip(population, scores))
        ranked.sort(key=lambda x: x[1], reverse=True)
        return ranked

    def next_generation(self, ranked: List[Tuple[Candidate, float]]) -> List[Candidate]:
        config = self.config
        new_population = [candidate for candidate, _ in ranked[:config.elite_count]]

        while len(new_population) < config.population_size:
            parent1 = self.select(ranked)
            parent2 = self.select(ranked)
            if self.rng.random() < config.crossover_rate:
                child = self.crossover(parent1, parent2)
            else:
                child = list(parent1)
            new_population.append(self.mutate(child))

        return new_population

    # --- Initial population ---

    def create_initial_population(self) -> List[Candidate]:
        size = self.config.population_size
        seeded = round(size * self.config.seed_fraction) if self.seed_schedule else 0
        population = []
        for i in range(size):
            base = self.seed_schedule if i < seeded else []
            population.append(self.build_candidate(base))
        logger.debug(f"Initial population: {size} candidates ({seeded} seeded)")
        return population

    def build_candidate(self, base: Sequence[Session] = ()) -> Candidate:
        """Place every demand `base` does not already serve, then add breaks."""
        placed: Candidate = list(base)
        demands = list(self.demands)
        self.rng.shuffle(demands)

        for demand in demands:
            if base and demand_is_covered(demand, base):
                continue
            session = self._place_demand(demand, placed)
            if session is not None:
                placed.append(session)

        return self.repair_breaks(placed)

    def _place_demand(self, demand: SessionDemand, placed: Candidate) -> Optional[Session]:
        client = self.client_map.get(demand.client_id)
        if client is None:
            return None

        candidates = eligible_therapists(demand.kind, client, self.therapists, self.day, self.rules)
        if not candidates:
            self.state.record_failure(demand, "No eligible therapist")
            return None

        for _ in range(self.config.placement_attempts):
            therapist = self.rng.choice(candidates)
            start = self._random_start(therapist, client.id, demand.duration_minutes, demand.preferred_window, placed)
            if start is None:
                continue
            return TherapySession(
                id=self._new_id(),
                kind=demand.kind,
                client_id=client.id,
                therapist_id=therapist.id,
                day=self.day,
                start=from_minutes(start),
                end=from_minutes(start + demand.duration_minutes)
            )

        self.state.record_failure(demand, "No free slot")
        return None

    # --- Genetic operators ---

    def select(self, ranked: List[Tuple[Candidate, float]]) -> Candidate:
        """
        Roulette-wheel selection over non-negative fitness.
        Negative (and failed) candidates get no mass; with no mass at all, pick uniformly.
        """
        total = sum(max(0.0, f) for _, f in ranked)
        if total <= 0:
            return self.rng.choice(ranked)[0]

        point = self.rng.random() * total
        for candidate, fitness in ranked:
            point -= max(0.0, fitness)
            if point <= 0:
                return candidate
        return ranked[-1][0]

    def crossover(self, parent1: Candidate, parent2: Candidate) -> Candidate:
        """
        Per-client uniform crossover: each client's sessions come wholly from one parent.
        Breaks come from parent one and are then repaired against the child's work.
        """
        genes1 = self._client_genes(parent1)
        genes2 = self._client_genes(parent2)

        client_ids = list(dict.fromkeys([c.id for c in self.clients] + list(genes1) + list(genes2)))
        child: Candidate = []
        seen = set()
        for client_id in client_ids:
            source = genes1 if self.rng.random() < 0.5 else genes2
            for session in source.get(client_id, []):
                if session.id not in seen:
                    child.append(session)
                    seen.add(session.id)

        child.extend(s for s in parent1 if s.client_id is None and s.id not in seen)
        return self.repair_breaks(child)

    @staticmethod
    def _client_genes(candidate: Candidate) -> Dict[str, List[Session]]:
        genes: Dict[str, List[Session]] = {}
        for s in candidate:
            if s.client_id is not None:
                genes.setdefault(s.client_id, []).append(s)
        return genes

    def mutate(self, candidate: Candidate) -> Candidate:
        """
        With probability mutation_rate, move one entry: a break to another slot in the
        break window, anything else to a different eligible therapist and/or start.
        Leaves the candidate unchanged when no alternative fits.
        """
        if not candidate or self.rng.random() >= self.config.mutation_rate:
            return candidate

        index = self.rng.randrange(len(candidate))
        entry = candidate[index]
        others = candidate[:index] + candidate[index + 1:]

        if entry.kind == SessionKind.INDIRECT:
            moved = self._move_break(entry, others)
        else:
            moved = self._reassign_session(entry, others)
        if moved is None:
            return candidate

        mutated = candidate[:index] + [moved] + candidate[index + 1:]
        return self.repair_breaks(mutated)

    def _reassign_session(self, entry: Session, others: Candidate) -> Optional[Session]:
        """
        Hand the entry to another eligible therapist at a feasible start. Only when no
        other therapist can take it does it stay with its therapist at a new start.
        """
        client = self.client_map.get(entry.client_id)
        duration = entry.duration_minutes
        if client is None or duration <= 0:
            return None

        candidates = eligible_therapists(entry.kind, client, self.therapists, self.day, self.rules)
        handover = [t for t in candidates if t.id != entry.therapist_id]
        current = [t for t in candidates if t.id == entry.therapist_id]

        preferred = self._preferred_window(entry)
        for pool in (handover, current):
            if not pool:
                continue
            for _ in range(self.config.placement_attempts):
                therapist = self.rng.choice(pool)
                start = self._random_start(therapist, client.id, duration, preferred, others)
                if start is None:
                    continue
                if therapist.id == entry.therapist_id and start == entry.start_minutes:
                    continue
                return entry.model_copy(update={
                    "therapist_id": therapist.id,
                    "day": self.day,
                    "start": from_minutes(start),
                    "end": from_minutes(start + duration),
                })
        return None

    def _preferred_window(self, entry: Session) -> Optional[Span]:
        """The demand window this entry most plausibly serves."""
        for demand in self.demands:
            if demand.client_id != entry.client_id or demand.kind != entry.kind:
                continue
            if demand.preferred_window is None:
                return None
            if demand.kind != SessionKind.DIRECT_THERAPY:
                return demand.preferred_window
            if ranges_overlap(entry.start_minutes, entry.end_minutes, *demand.preferred_window):
                return demand.preferred_window
        return None

    def _move_break(self, entry: Session, others: Candidate) -> Optional[Session]:
        therapist = self.therapist_map.get(entry.therapist_id)
        if therapist is None:
            return None
        starts = [s for s in self._break_starts(therapist, others) if s != entry.start_minutes]
        if not starts:
            return None
        start = self.rng.choice(starts)
        return entry.model_copy(update={
            "day": self.day,
            "start": from_minutes(start),
            "end": from_minutes(start + self.rules.break_minutes),
        })

    # --- Repair ---

    def repair_breaks(self, candidate: Candidate) -> Candidate:
        """
        Exactly one break per therapist with billable work, none for the rest.
        Surplus breaks and breaks clashing with the therapist's sessions are dropped;
        missing ones are placed fresh (ideal window first).
        """
        working = list(dict.fromkeys(s.therapist_id for s in candidate if s.is_billable))
        working_set = set(working)
        billable = [s for s in candidate if s.is_billable]

        result: Candidate = []
        has_break = set()
        for s in candidate:
            if s.kind != SessionKind.INDIRECT:
                result.append(s)
                continue
            if s.therapist_id not in working_set or s.therapist_id in has_break:
                continue
            if any(
                b.therapist_id == s.therapist_id and ranges_overlap(s.start_minutes, s.end_minutes, b.start_minutes, b.end_minutes)
                for b in billable
            ):
                continue
            result.append(s)
            has_break.add(s.therapist_id)

        for therapist_id in working:
            if therapist_id in has_break:
                continue
            therapist = self.therapist_map.get(therapist_id)
            if therapist is None:
                continue
            lunch = self._place_break(therapist, result)
            if lunch is not None:
                result.append(lunch)

        return result

    def _place_break(self, therapist: Therapist, placed: Candidate) -> Optional[Session]:
        starts = self._break_starts(therapist, placed)
        if not starts:
            return None
        ideal = self.rules.ideal_break_window
        preferred = [s for s in starts if ideal.start_minutes <= s <= ideal.end_minutes]
        start = self.rng.choice(preferred or starts)
        return IndirectSession(
            id=self._new_id(),
            therapist_id=therapist.id,
            day=self.day,
            start=from_minutes(start),
            end=from_minutes(start + self.rules.break_minutes)
        )

    def _break_starts(self, therapist: Therapist, placed: Candidate) -> List[int]:
        rules = self.rules
        windows = therapist_windows(therapist, self.day, rules, clip=rules.break_window)
        starts = candidate_starts(rules.break_minutes, windows, step=rules.coverage_step_minutes)
        return [
            s for s in starts
            if s <= rules.latest_break_start and self._is_free(therapist.id, None, s, s + rules.break_minutes, placed)
        ]

    # --- Slot helpers ---

    def _random_start(
        self,
        therapist: Therapist,
        client_id: str,
        duration: int,
        preferred: Optional[Span],
        placed: Candidate
    ) -> Optional[int]:
        """A random free start for this therapist/client pair, inside `preferred` when possible."""
        windows = therapist_windows(therapist, self.day, self.rules, clip=self.rules.operating_window)
        step = self.rules.coverage_step_minutes

        if preferred is not None:
            inside = [
                s for s in candidate_starts(duration, windows, preferred, step)
                if preferred[0] <= s and s + duration <= preferred[1]
                and self._is_free(therapist.id, client_id, s, s + duration, placed)
            ]
            if inside:
                return self.rng.choice(inside)

        anywhere = [
            s for s in candidate_starts(duration, windows, step=step)
            if self._is_free(therapist.id, client_id, s, s + duration, placed)
        ]
        return self.rng.choice(anywhere) if anywhere else None

    def _is_free(
        self,
        therapist_id: str,
        client_id: Optional[str],
        start: int,
        end: int,
        placed: Candidate
    ) -> bool:
        for s in placed:
            if s.day != self.day or not ranges_overlap(start, end, s.start_minutes, s.end_minutes):
                continue
            if s.therapist_id == therapist_id:
                return False
            if client_id is not None and s.client_id == client_id:
                return False

        for co in self.callouts:
            if not ranges_overlap(start, end, co.start_minutes, co.end_minutes):
                continue
            if co.entity_type == CalloutEntity.THERAPIST and co.entity_id == therapist_id:
                return False
            if co.entity_type == CalloutEntity.CLIENT and client_id is not None and co.entity_id == client_id:
                return False
        return True

    def _new_id(self) -> str:
        self._next_id += 1
        return f"auto-{self._run_tag}-{self._next_id}"
