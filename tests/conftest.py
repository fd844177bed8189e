"""Pytest configuration and shared fixtures."""

import pytest

from models import AlliedHealthNeed, ServiceType, TimeWindow

from factories import make_client, make_therapist, t, weekday_availability


def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (deselect with '-m \"not integration\"')"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


@pytest.fixture
def therapist():
    """One RBT working 09:00-17:00 on weekdays."""
    return make_therapist("T1", "Taylor R.", ["RBT"], availability=weekday_availability("09:00", "17:00"))


@pytest.fixture
def client():
    return make_client("C1", "Casey P.")


@pytest.fixture
def roster():
    """A small clinic: three therapists, three clients."""
    therapists = [
        make_therapist("T1", "Taylor R.", ["RBT", "MD_MEDICAID"], team_id="North"),
        make_therapist(
            "T2", "Jordan B.", ["BCBA", "SLP Certified"],
            services=[ServiceType.SLP], availability=[], team_id="North"
        ),
        make_therapist("T3", "Morgan K.", ["RBT"], team_id="South"),
    ]
    clients = [
        make_client("C1", "Casey P.", ["MD_MEDICAID"], team_id="North"),
        make_client(
            "C2", "Riley S.",
            needs=[AlliedHealthNeed(
                service=ServiceType.SLP,
                sessions_per_week=2,
                duration_minutes=30,
                preferred_window=TimeWindow(start=t("13:00"), end=t("15:00")),
            )],
            team_id="North",
        ),
        make_client("C3", "Quinn D.", team_id="South"),
    ]
    return clients, therapists
