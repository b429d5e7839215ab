"""
Shared pytest fixtures and configuration for all tests.
"""
import os
from unittest.mock import MagicMock

import pytest
from hypothesis import settings, Verbosity, Phase

from tests.factories import TRUCK, VAN
from storage.memory import InMemoryTelemetryStore, InMemoryVehicleDirectory
from vehicles.service import VehicleService

# Default profile: balanced for local development
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,  # async tests
    print_blob=True,
)

# CI profile: more thorough, reproducible
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,
)

# Debug profile: minimal examples, no shrinking
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],
)

settings.register_profile(
    "fast",
    max_examples=20,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


@pytest.fixture
def vehicle_directory() -> InMemoryVehicleDirectory:
    """Directory holding the truck B1234XYZ (id 1) and a van (id 2)."""
    return InMemoryVehicleDirectory([TRUCK, VAN])


@pytest.fixture
def telemetry_store() -> InMemoryTelemetryStore:
    return InMemoryTelemetryStore()


@pytest.fixture
def vehicle_service(vehicle_directory) -> VehicleService:
    return VehicleService(vehicle_directory)


@pytest.fixture
def mock_observability() -> MagicMock:
    """Observability stand-in so tests never reconfigure the root logger."""
    return MagicMock()


@pytest.fixture
def sample_gps_payload() -> dict:
    """Valid POST /api/gps body for vehicle 1."""
    return {
        "vehicleReference": 1,
        "latitude": -6.2,
        "longitude": 106.816666,
        "speed": 80,
        "timestamp": "2025-07-17T10:00:00",
    }
