"""
Synthetic scenario generator for the Therapy Staff Scheduler.
STRATEGY: one seeded random.Random per generator, so the same seed always
produces the same clinic (rosters, availability, needs and callouts).
"""

import logging
import random
from datetime import date, time, timedelta
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from models import (
    Callout,
    CalloutEntity,
    Client,
    DayOfWeek,
    ServiceType,
    Therapist,
)

logger = logging.getLogger(__name__)

FIRST_NAMES = [
    "Avery", "Blake", "Casey", "Devon", "Emerson", "Finley", "Harper", "Jordan",
    "Kai", "Logan", "Morgan", "Parker", "Quinn", "Reese", "Rowan", "Sage",
    "Skyler", "Taylor", "Jamie", "Riley",
]
LAST_INITIALS = "ABCDEFGHJKLMNPRSTW"

TEAMS = ["North", "South", "East"]
BASE_QUALIFICATIONS = ["RBT", "BCBA"]
PAYER_CREDENTIALS = ["MD_MEDICAID", "TRICARE"]
CALLOUT_REASONS = ["Sick", "Appointment", "Family emergency", "Training", "Car trouble"]

WEEKDAYS = [d for d in DayOfWeek if not d.is_weekend]


class ScenarioGenerator:
    def __init__(self, seed: Optional[int] = None):
        self.rng = random.Random(seed)

    def _name(self) -> str:
        return f"{self.rng.choice(FIRST_NAMES)} {self.rng.choice(LAST_INITIALS)}."

    def _build(self, model_class: Type[BaseModel], payload: Dict[str, Any]) -> Optional[BaseModel]:
        """Validate one generated record; drop (and log) anything the models reject."""
        try:
            return model_class.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Skipping invalid {model_class.__name__}: {e.json()}")
            return None

    # --- Demand ---

    def generate_clients(self, count: int = 10) -> List[Client]:
        clients = []
        for i in range(count):
            credentials = []
            if self.rng.random() < 0.3:
                credentials.append(self.rng.choice(PAYER_CREDENTIALS))

            needs = []
            for service in ServiceType:
                if self.rng.random() < 0.25:
                    needs.append(self._allied_health_need(service))

            client = self._build(Client, {
                "id": f"client_{i + 1:02d}",
                "name": self._name(),
                "team_id": self.rng.choice(TEAMS),
                "required_credentials": credentials,
                "allied_health_needs": needs,
            })
            if client:
                clients.append(client)

        logger.info(f"Generated {len(clients)} clients")
        return clients

    def _allied_health_need(self, service: ServiceType) -> Dict[str, Any]:
        need: Dict[str, Any] = {
            "service": service.value,
            "sessions_per_week": self.rng.randint(1, 3),
            "duration_minutes": self.rng.choice([30, 45, 60]),
        }
        if self.rng.random() < 0.5:
            start_hour = self.rng.choice([9, 10, 13, 14])
            need["preferred_window"] = {"start": time(start_hour, 0), "end": time(start_hour + 2, 0)}
        if self.rng.random() < 0.5:
            need["specific_days"] = [d.value for d in self.rng.sample(WEEKDAYS, k=need["sessions_per_week"])]
        return need

    # --- Supply ---

    def generate_therapists(self, count: int = 8) -> List[Therapist]:
        therapists = []
        for i in range(count):
            qualifications = [self.rng.choice(BASE_QUALIFICATIONS)]
            qualifications += [c for c in PAYER_CREDENTIALS if self.rng.random() < 0.5]

            services = []
            if self.rng.random() < 0.2:
                service = self.rng.choice(list(ServiceType))
                services.append(service.value)
                qualifications.append(f"{service.value} Certified")

            therapist = self._build(Therapist, {
                "id": f"ther_{i + 1:02d}",
                "name": self._name(),
                "team_id": self.rng.choice(TEAMS),
                "qualifications": qualifications,
                "allied_health_services": services,
                "availability": self._availability(),
            })
            if therapist:
                therapists.append(therapist)

        logger.info(f"Generated {len(therapists)} therapists")
        return therapists

    def _availability(self) -> List[Dict[str, Any]]:
        """Mostly full weekday shifts; some part-timers; a few with no declared hours."""
        roll = self.rng.random()
        if roll < 0.1:
            return []
        if roll < 0.3:
            shift = self.rng.choice([(time(8, 45), time(13, 0)), (time(12, 0), time(17, 15))])
        else:
            shift = (time(8, 45), time(17, 15))
        return [
            {"day_of_week": day.value, "start_time": shift[0], "end_time": shift[1]}
            for day in WEEKDAYS
        ]

    # --- Disruptions ---

    def generate_callouts(
        self,
        on: date,
        clients: List[Client],
        therapists: List[Therapist],
        count: int = 2
    ) -> List[Callout]:
        callouts = []
        for i in range(count):
            if self.rng.random() < 0.5 and therapists:
                entity_type, entity_id = CalloutEntity.THERAPIST, self.rng.choice(therapists).id
            elif clients:
                entity_type, entity_id = CalloutEntity.CLIENT, self.rng.choice(clients).id
            else:
                continue

            start_hour = self.rng.randint(9, 15)
            length = self.rng.choice([1, 2])
            if self.rng.random() < 0.3:
                start, end = time(9, 0), time(17, 0)
            else:
                start, end = time(start_hour, 0), time(min(start_hour + length, 17), 0)

            callout = self._build(Callout, {
                "id": f"callout_{i + 1:02d}",
                "entity_type": entity_type.value,
                "entity_id": entity_id,
                "start_date": on,
                "end_date": on + timedelta(days=self.rng.choice([0, 0, 1])),
                "start_time": start,
                "end_time": end,
                "reason": self.rng.choice(CALLOUT_REASONS),
            })
            if callout:
                callouts.append(callout)

        logger.info(f"Generated {len(callouts)} callouts for {on}")
        return callouts

    def generate_scenario(
        self,
        on: date,
        client_count: int = 10,
        therapist_count: int = 8,
        callout_count: int = 2
    ) -> Dict[str, List]:
        clients = self.generate_clients(client_count)
        therapists = self.generate_therapists(therapist_count)
        callouts = self.generate_callouts(on, clients, therapists, callout_count)
        return {
            "clients": clients,
            "therapists": therapists,
            "callouts": callouts,
        }
