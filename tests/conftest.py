"""
Test configuration and fixtures
"""

import os
from datetime import date

import pytest

# Settings are read at import time of the app module.
os.environ.setdefault("STAGE_DELAY_SECONDS", "0")
os.environ.setdefault("DEFAULT_SEED_RECORDS", "0")
os.environ.setdefault("STORAGE_BACKEND", "memory")

from dashboard_metrics.cache import AggregationCache  # noqa: E402
from dashboard_metrics.record_store import RecordStore  # noqa: E402
from dashboard_metrics.storage import InMemoryStorage  # noqa: E402

COLLECTIONS = ["rooms", "clients", "bills", "reservations"]

# A Monday; its Sunday-aligned week runs 2026-10-18 .. 2026-10-24.
TODAY = date(2026, 10, 19)


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return AggregationCache(max_entries=16, default_ttl=600, clock=clock)


@pytest.fixture
def store():
    return RecordStore(InMemoryStorage(), COLLECTIONS)


@pytest.fixture
def sample_records():
    """Records spread across two users"""
    return {
        "rooms": [
            {"number": "101", "status": "Occupée", "category": "Standard"},
            {"number": "102", "status": "Disponible", "category": "Standard"},
            {"number": "103", "status": "Disponible", "category": "Suite"},
            {"number": "104", "status": "Maintenance", "category": "Suite"},
        ],
        "clients": [
            {"name": "Awa", "phone": "771234567", "createdBy": "alice"},
            {"name": "Moussa", "createdBy": "bob"},
        ],
        "bills": [
            {"amount": "10000", "date": "2026-10-19", "motif": "Nuitée", "receivedFrom": "Awa", "createdBy": "alice"},
            {"amount": "5000", "date": "2026-10-19", "motif": "Repos", "receivedFrom": "Moussa", "createdBy": "bob"},
            {"amount": "7000", "date": "2026-10-02", "motif": "Nuitée", "createdBy": "alice"},
        ],
        "reservations": [
            {"clientName": "Awa", "roomNumber": "101", "checkIn": "2026-10-19", "createdBy": "alice"},
            {"clientName": "Moussa", "roomNumber": "102", "checkIn": "2026-10-21", "createdBy": "bob"},
        ],
    }


@pytest.fixture
def populated_store(store, sample_records):
    for name, records in sample_records.items():
        store.write_collection(name, records)
    return store
