from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .cache import make_cache_key


class CollectionRecord(BaseModel):
    """Base schema for a raw collection record.

    Every named field is optional text. Numbers are kept as their string
    form, anything that is not a scalar becomes ``None``. Unknown fields are
    preserved as extras so a record can be handed back unchanged.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _scalar_as_text(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return str(value)
        return None


class RoomRecord(CollectionRecord):
    number: Optional[str] = None
    price: Optional[str] = None
    status: Optional[str] = None
    category: Optional[str] = None


class ClientRecord(CollectionRecord):
    name: Optional[str] = None
    phone: Optional[str] = None
    created_by: Optional[str] = Field(default=None, alias="createdBy")


class BillRecord(CollectionRecord):
    amount: Optional[str] = None
    date: Optional[str] = None
    motif: Optional[str] = None
    received_from: Optional[str] = Field(default=None, alias="receivedFrom")
    created_by: Optional[str] = Field(default=None, alias="createdBy")


class ReservationRecord(CollectionRecord):
    client_name: Optional[str] = Field(default=None, alias="clientName")
    room_number: Optional[str] = Field(default=None, alias="roomNumber")
    check_in: Optional[str] = Field(default=None, alias="checkIn")
    created_by: Optional[str] = Field(default=None, alias="createdBy")


class Scope(BaseModel):
    """Identity boundary partitioning cache keys and visible records."""

    username: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_restricted(self) -> bool:
        return self.role == "user"

    @property
    def cache_key(self) -> str:
        return make_cache_key(self.username, restricted=self.is_restricted)


class RoomTally(BaseModel):
    available: int = 0
    occupied: int = 0
    maintenance: int = 0
    cleaning: int = 0
    total: int = 0
    occupancy_rate: int = 0


class MotifTally(BaseModel):
    count: int = 0
    amount: int = 0


class MotifStats(BaseModel):
    nuitee: MotifTally = Field(default_factory=MotifTally)
    repos: MotifTally = Field(default_factory=MotifTally)


class RevenueStats(BaseModel):
    monthly: int = 0
    daily: MotifStats = Field(default_factory=MotifStats)
    weekly: MotifStats = Field(default_factory=MotifStats)


class WeekdayCount(BaseModel):
    day: str
    count: int
    max_count: int


class Activity(BaseModel):
    type: str
    message: str
    detail: str
    time: str


class StatBundle(BaseModel):
    """Aggregate statistics published to the dashboard."""

    occupied_rooms: int = 0
    today_reservations: int = 0
    today_revenue: int = 0
    recent_activities: List[Activity] = Field(default_factory=list)
    occupancy_rate: int = 0
    available_rooms: int = 0
    maintenance_rooms: int = 0
    cleaning_rooms: int = 0
    total_rooms: int = 0
    rooms_by_category: Dict[str, List[RoomRecord]] = Field(default_factory=dict)
    weekly_reservations: List[WeekdayCount] = Field(default_factory=list)
    monthly_revenue: int = 0
    total_clients: int = 0
    total_bills: int = 0
    daily_stats: MotifStats = Field(default_factory=MotifStats)
    weekly_stats: MotifStats = Field(default_factory=MotifStats)


class LoadingState(BaseModel):
    """In-flight flag per refinement stage."""

    rooms: bool = False
    reservations: bool = False
    revenue: bool = False
    clients: bool = False
    activities: bool = False


class PreloadState(str, Enum):
    IDLE = "idle"
    PRELOADING = "preloading"
    BASE_READY = "base_ready"
    REFINING = "refining"
    REFINED = "refined"


class DashboardSnapshot(BaseModel):
    state: PreloadState
    data: StatBundle
    loading: LoadingState
