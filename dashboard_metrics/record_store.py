import json
import logging
import random
import uuid
from collections.abc import Mapping
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from .models import Scope
from .storage import KeyValueStorage

logger = logging.getLogger(__name__)

ROOM_STATUSES = ["Disponible", "Occupée", "Maintenance", "Nettoyage"]
ROOM_CATEGORIES = ["Standard", "Confort", "Suite"]
MOTIFS = ["Nuitée", "Repos"]
_FIRST_NAMES = ["Awa", "Moussa", "Fatou", "Ibrahima", "Aminata", "Cheikh"]


class RecordStore:
    """Read access to named record collections kept as JSON strings."""

    def __init__(self, storage: KeyValueStorage, collection_names: Iterable[str]):
        self.storage = storage
        self.collection_names: List[str] = list(collection_names)

    def read_collection(self, name: str) -> List[Dict[str, Any]]:
        """
        Return the records of a collection.

        Never raises: a missing key, undecodable JSON, a non-list payload or
        a failing storage backend all read as an empty collection.
        """
        try:
            raw = self.storage.get(name)
        except Exception as exc:
            logger.warning(f"Reading collection '{name}' failed: {exc}")
            return []
        if not raw:
            return []
        try:
            decoded = json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.warning(f"Collection '{name}' is not valid JSON: {exc}")
            return []
        if not isinstance(decoded, list):
            logger.warning(f"Collection '{name}' is not a list, treating as empty")
            return []
        return decoded

    def write_collection(self, name: str, records: List[Dict[str, Any]]) -> None:
        self._check_known(name)
        self.storage.set(name, json.dumps(records, ensure_ascii=False))

    def append(self, name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._check_known(name)
        record = dict(payload)
        record.setdefault("id", str(uuid.uuid4()))
        records = self.read_collection(name)
        records.append(record)
        self.write_collection(name, records)
        return record

    def stats(self) -> Dict[str, int]:
        return {name: len(self.read_collection(name)) for name in self.collection_names}

    def _check_known(self, name: str) -> None:
        if name not in self.collection_names:
            raise KeyError(f"Unknown collection '{name}'")


def apply_scope(records: List[Any], scope: Optional[Scope]) -> List[Any]:
    """Keep only the records a restricted scope created; others see all."""
    if scope is None or not scope.is_restricted:
        return records
    visible = []
    for record in records:
        try:
            if isinstance(record, Mapping) and record.get("createdBy") == scope.username:
                visible.append(record)
        except Exception as exc:
            logger.debug(f"Skipping unreadable record during scope filter: {exc}")
    return visible


def _random_room(index: int) -> Dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "number": str(101 + index),
        "price": str(random.choice([15000, 20000, 35000])),
        "status": random.choice(ROOM_STATUSES),
        "category": random.choice(ROOM_CATEGORIES),
    }


def _random_day(today: date) -> str:
    return (today - timedelta(days=random.randint(0, 10))).isoformat()


def _random_client(created_by: str) -> Dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "name": random.choice(_FIRST_NAMES),
        "phone": f"77{random.randint(1000000, 9999999)}",
        "createdBy": created_by,
    }


def _random_bill(today: date, created_by: str) -> Dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "amount": str(random.choice([5000, 10000, 15000, 20000])),
        "date": _random_day(today),
        "motif": random.choice(MOTIFS),
        "receivedFrom": random.choice(_FIRST_NAMES),
        "createdBy": created_by,
    }


def _random_reservation(today: date, created_by: str) -> Dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "clientName": random.choice(_FIRST_NAMES),
        "roomNumber": str(random.randint(101, 120)),
        "checkIn": _random_day(today),
        "createdBy": created_by,
    }


def seed_demo_records(
    store: RecordStore, count: int, created_by: str = "admin"
) -> Dict[str, int]:
    """Fill empty collections with random demo records."""
    if count <= 0:
        return {}
    today = date.today()
    factories = {
        "rooms": _random_room,
        "clients": lambda i: _random_client(created_by),
        "bills": lambda i: _random_bill(today, created_by),
        "reservations": lambda i: _random_reservation(today, created_by),
    }
    seeded: Dict[str, int] = {}
    for name, factory in factories.items():
        if name not in store.collection_names or store.read_collection(name):
            continue
        store.write_collection(name, [factory(i) for i in range(count)])
        seeded[name] = count
    if seeded:
        logger.info(f"Seeded demo records: {seeded}")
    return seeded
