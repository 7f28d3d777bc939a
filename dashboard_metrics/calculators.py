"""
Pure statistic calculators for the dashboard.

Every function accepts whatever a collection read produced: a non-list input
counts as empty, entries that are not mappings are skipped, and a record
that fails to parse is dropped on its own without affecting the rest.
Functions that depend on the current day take ``today`` explicitly and fall
back to the local date.
"""

import logging
import re
from collections.abc import Mapping
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

from .models import (
    Activity,
    BillRecord,
    CollectionRecord,
    MotifStats,
    RevenueStats,
    RoomRecord,
    RoomTally,
    ReservationRecord,
    WeekdayCount,
)

logger = logging.getLogger(__name__)

STATUS_AVAILABLE = "Disponible"
STATUS_OCCUPIED = "Occupée"
STATUS_MAINTENANCE = "Maintenance"
STATUS_CLEANING = "Nettoyage"
ROOM_STATUSES = (STATUS_AVAILABLE, STATUS_OCCUPIED, STATUS_MAINTENANCE, STATUS_CLEANING)

MOTIF_NUITEE = "Nuitée"
MOTIF_REPOS = "Repos"

WEEKDAY_LABELS = ("Lun", "Mar", "Mer", "Jeu", "Ven", "Sam", "Dim")
ACTIVITY_TIME_LABEL = "Il y a quelques minutes"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

RecordT = TypeVar("RecordT", bound=CollectionRecord)


def coerce_records(records: Any, model: Type[RecordT]) -> List[RecordT]:
    if not isinstance(records, (list, tuple)):
        return []
    parsed: List[RecordT] = []
    for index, raw in enumerate(records):
        if not isinstance(raw, Mapping):
            continue
        try:
            parsed.append(model.model_validate(dict(raw)))
        except Exception as exc:
            logger.debug(f"Dropping unreadable {model.__name__} at index {index}: {exc}")
    return parsed


def _tail(records: Any, count: int) -> List[Any]:
    if not isinstance(records, (list, tuple)):
        return []
    return list(records[-count:])


def parse_amount(value: Optional[str]) -> int:
    """Leading integer of ``value``; 0 when there is none."""
    if not value:
        return 0
    match = _LEADING_INT.match(value)
    return int(match.group(1)) if match else 0


def parse_day(value: Optional[str]) -> Optional[date]:
    """Calendar date of an ISO date or datetime string, None if unparseable."""
    if not value:
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def monday_index(day: date) -> int:
    sunday_first = day.isoweekday() % 7
    return (sunday_first + 6) % 7


def week_bounds(today: date) -> Tuple[date, date]:
    """Sunday-aligned week containing ``today``, both ends inclusive."""
    week_start = today - timedelta(days=today.isoweekday() % 7)
    return week_start, week_start + timedelta(days=6)


def occupancy_rate(occupied: int, total: int) -> int:
    if total <= 0:
        return 0
    # half-up rounding
    return int(occupied * 100 / total + 0.5)


def room_status_tally(rooms: Any) -> RoomTally:
    counts = {status: 0 for status in ROOM_STATUSES}
    parsed = coerce_records(rooms, RoomRecord)
    for room in parsed:
        if room.status in counts:
            counts[room.status] += 1
    return RoomTally(
        available=counts[STATUS_AVAILABLE],
        occupied=counts[STATUS_OCCUPIED],
        maintenance=counts[STATUS_MAINTENANCE],
        cleaning=counts[STATUS_CLEANING],
        total=len(parsed),
        occupancy_rate=occupancy_rate(counts[STATUS_OCCUPIED], len(parsed)),
    )


def today_reservations(reservations: Any, today: Optional[date] = None) -> int:
    day = (today or date.today()).isoformat()
    return sum(
        1
        for reservation in coerce_records(reservations, ReservationRecord)
        if reservation.check_in == day
    )


def today_revenue(bills: Any, today: Optional[date] = None) -> int:
    day = (today or date.today()).isoformat()
    return sum(
        parse_amount(bill.amount)
        for bill in coerce_records(bills, BillRecord)
        if bill.date == day
    )


def weekly_histogram(reservations: Any) -> Tuple[List[int], int]:
    """Check-ins per weekday, Monday first, and the reference maximum."""
    counts = [0] * 7
    for reservation in coerce_records(reservations, ReservationRecord):
        day = parse_day(reservation.check_in)
        if day is None:
            continue
        counts[monday_index(day)] += 1
    return counts, max(1, max(counts))


def weekly_reservations(reservations: Any) -> List[WeekdayCount]:
    counts, max_count = weekly_histogram(reservations)
    return [
        WeekdayCount(day=label, count=counts[index], max_count=max_count)
        for index, label in enumerate(WEEKDAY_LABELS)
    ]


def _add_to_motif(stats: MotifStats, motif: Optional[str], amount: int) -> None:
    if motif == MOTIF_NUITEE:
        tally = stats.nuitee
    elif motif == MOTIF_REPOS:
        tally = stats.repos
    else:
        return
    tally.count += 1
    tally.amount += amount


def revenue_by_motif(bills: Any, today: Optional[date] = None) -> RevenueStats:
    """
    Monthly revenue plus per-motif count/amount for today and this week.

    Bills without a readable date are ignored entirely. The monthly figure
    includes every motif; the daily and weekly figures only ``Nuitée`` and
    ``Repos``.
    """
    today = today or date.today()
    today_text = today.isoformat()
    week_start, week_end = week_bounds(today)
    stats = RevenueStats()

    for bill in coerce_records(bills, BillRecord):
        bill_day = parse_day(bill.date)
        if bill_day is None:
            continue
        amount = parse_amount(bill.amount)

        if bill_day.year == today.year and bill_day.month == today.month:
            stats.monthly += amount
        if bill.date == today_text:
            _add_to_motif(stats.daily, bill.motif, amount)
        if week_start <= bill_day <= week_end:
            _add_to_motif(stats.weekly, bill.motif, amount)

    return stats


def infer_activity_type(record: Mapping) -> str:
    # Guessed from field presence; a client record carrying clientName
    # reads as a reservation.
    if record.get("clientName"):
        return "reservation"
    if record.get("name"):
        return "client"
    return "billing"


def _text(value: Any, fallback: str) -> str:
    if not value:
        return fallback
    return str(value)


def to_activity(record: Mapping) -> Activity:
    kind = infer_activity_type(record)
    if kind == "reservation":
        message = f"Nouvelle réservation - {record.get('clientName')}"
        detail = f"Chambre {_text(record.get('roomNumber'), 'N/A')}"
    elif kind == "client":
        message = f"Nouveau client - {record.get('name')}"
        detail = _text(record.get("phone"), "Téléphone non renseigné")
    else:
        message = f"Nouveau reçu - {_text(record.get('receivedFrom'), 'Client')}"
        detail = f"{_text(record.get('amount'), '0')} FCFA"
    return Activity(type=kind, message=message, detail=detail, time=ACTIVITY_TIME_LABEL)


def recent_activities(
    reservations: Any, clients: Any, bills: Any, limit: int = 5
) -> List[Activity]:
    """
    Activity feed over the tail of each collection.

    Takes the last 3 reservations, last 2 clients and last 2 bills in that
    order and keeps the final ``limit`` of them.
    """
    candidates: Sequence[Mapping] = [
        record
        for record in _tail(reservations, 3) + _tail(clients, 2) + _tail(bills, 2)
        if isinstance(record, Mapping)
    ]
    activities: List[Activity] = []
    for record in candidates[-limit:]:
        try:
            activities.append(to_activity(record))
        except Exception as exc:
            logger.debug(f"Skipping unreadable activity record: {exc}")
    return activities


def rooms_by_category(rooms: Any) -> Dict[str, List[RoomRecord]]:
    """Group rooms by category; rooms without a category are left out."""
    groups: Dict[str, List[RoomRecord]] = {}
    for room in coerce_records(rooms, RoomRecord):
        if not room.category:
            continue
        groups.setdefault(room.category, []).append(room)
    return groups
