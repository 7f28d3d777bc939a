import asyncio
import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

from cachetools import LRUCache  # type: ignore[import-untyped]

from . import calculators
from .cache import AggregationCache
from .models import (
    BillRecord,
    ClientRecord,
    DashboardSnapshot,
    LoadingState,
    PreloadState,
    Scope,
    StatBundle,
)
from .record_store import RecordStore, apply_scope

logger = logging.getLogger(__name__)

# Consumers key their loading placeholders to this order.
STAGES: Tuple[str, ...] = ("rooms", "reservations", "revenue", "clients", "activities")

Listener = Callable[[DashboardSnapshot], None]


class PreloaderStateError(RuntimeError):
    """Raised when an operation is invoked from a state that does not allow it."""


class DashboardPreloader:
    """
    Builds the dashboard statistics for one scope.

    ``preload_data`` publishes a cheap base bundle, served from the cache
    when a live entry exists. ``load_data_by_priority`` then fills in the
    expensive statistics one stage at a time, toggling the stage's loading
    flag around each computation.
    """

    def __init__(
        self,
        store: RecordStore,
        cache: AggregationCache,
        scope: Optional[Scope] = None,
        ttl_seconds: Optional[float] = None,
        stage_delay: float = 0.0,
        default_total_rooms: int = 27,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.cache = cache
        self.scope = scope or Scope()
        self.ttl_seconds = ttl_seconds
        self.stage_delay = stage_delay
        self.default_total_rooms = default_total_rooms
        self._today = today

        self.state = PreloadState.IDLE
        self.data = StatBundle(
            total_rooms=default_total_rooms, available_rooms=default_total_rooms
        )
        self.loading_states = LoadingState()
        self._listeners: List[Listener] = []
        self._pipeline_lock = asyncio.Lock()

        self._stage_handlers: Dict[str, Callable[[], Dict[str, Any]]] = {
            "rooms": self._rooms_stage,
            "reservations": self._reservations_stage,
            "revenue": self._revenue_stage,
            "clients": self._clients_stage,
            "activities": self._activities_stage,
        }

    @property
    def cache_key(self) -> str:
        return self.scope.cache_key

    def snapshot(self) -> DashboardSnapshot:
        return DashboardSnapshot(
            state=self.state,
            data=self.data,
            loading=self.loading_states.model_copy(),
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called on every publish; returns an unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Dashboard listener failed")

    def _read(self, name: str) -> List[Any]:
        records = self.store.read_collection(name)
        if name == "rooms":
            return records
        return apply_scope(records, self.scope)

    async def preload_data(self) -> StatBundle:
        """
        Publish the base bundle, from cache when possible.

        Allowed from ``IDLE``, ``BASE_READY`` and ``REFINED``; a call made
        while a refinement is running waits for it to finish first. A call
        made while a preload is already running returns the current bundle
        without doing any work.
        """
        if self.state is PreloadState.PRELOADING:
            logger.debug(f"Preload for {self.cache_key} skipped, already preloading")
            return self.data
        async with self._pipeline_lock:
            return self._preload()

    def _preload(self) -> StatBundle:
        previous_state = self.state
        self.state = PreloadState.PRELOADING
        try:
            cached = self.cache.get(self.cache_key)
            if isinstance(cached, StatBundle):
                self.data = cached
            else:
                self.data = self._compute_base_bundle()
                self.cache.set(self.cache_key, self.data, self.ttl_seconds)
            self.state = PreloadState.BASE_READY
        except Exception:
            logger.exception(f"Preload for {self.cache_key} failed")
            self.state = previous_state
            return self.data

        self._publish()
        return self.data

    def _compute_base_bundle(self) -> StatBundle:
        today = self._today()
        rooms = self._read("rooms")
        clients = self._read("clients")
        bills = self._read("bills")
        reservations = self._read("reservations")

        tally = calculators.room_status_tally(rooms)
        return StatBundle(
            occupied_rooms=tally.occupied,
            today_reservations=calculators.today_reservations(reservations, today),
            today_revenue=calculators.today_revenue(bills, today),
            occupancy_rate=tally.occupancy_rate,
            available_rooms=tally.available,
            maintenance_rooms=tally.maintenance,
            cleaning_rooms=tally.cleaning,
            total_rooms=tally.total or self.default_total_rooms,
            total_clients=len(calculators.coerce_records(clients, ClientRecord)),
            total_bills=len(calculators.coerce_records(bills, BillRecord)),
        )

    async def load_data_by_priority(self) -> StatBundle:
        """Compute and publish the refinement stages in their fixed order."""
        async with self._pipeline_lock:
            return await self._refine()

    async def _refine(self) -> StatBundle:
        if self.state is not PreloadState.BASE_READY:
            raise PreloaderStateError(
                f"Refinement needs base data, preloader is {self.state.value}"
            )

        for stage in STAGES:
            self.state = PreloadState.REFINING
            self._set_loading(stage, True)
            try:
                await asyncio.sleep(self.stage_delay)
                update = self._stage_handlers[stage]()
                if update:
                    self.data = self.data.model_copy(update=update)
            except Exception:
                logger.exception(f"Stage '{stage}' failed for {self.cache_key}")
            finally:
                self._set_loading(stage, False)

        self.state = PreloadState.REFINED
        self._publish()
        return self.data

    def _set_loading(self, stage: str, value: bool) -> None:
        self.loading_states = self.loading_states.model_copy(update={stage: value})
        self._publish()

    def _rooms_stage(self) -> Dict[str, Any]:
        # already part of the base bundle
        return {}

    def _reservations_stage(self) -> Dict[str, Any]:
        reservations = self._read("reservations")
        return {"weekly_reservations": calculators.weekly_reservations(reservations)}

    def _revenue_stage(self) -> Dict[str, Any]:
        stats = calculators.revenue_by_motif(self._read("bills"), self._today())
        return {
            "monthly_revenue": stats.monthly,
            "daily_stats": stats.daily,
            "weekly_stats": stats.weekly,
        }

    def _clients_stage(self) -> Dict[str, Any]:
        return {"rooms_by_category": calculators.rooms_by_category(self._read("rooms"))}

    def _activities_stage(self) -> Dict[str, Any]:
        activities = calculators.recent_activities(
            self._read("reservations"), self._read("clients"), self._read("bills")
        )
        return {"recent_activities": activities}

    async def refresh(self) -> StatBundle:
        """
        Drop the cached bundle for this scope and rebuild everything.

        A refinement already in flight completes before the rebuild starts,
        so the rebuild always reads the records as they are after the change.
        """
        async with self._pipeline_lock:
            self.cache.invalidate(self.cache_key)
            self._preload()
            if self.state is PreloadState.BASE_READY:
                await self._refine()
            else:
                logger.warning(
                    f"Refresh for {self.cache_key} skipped refinement, state={self.state.value}"
                )
        return self.data


class DashboardRegistry:
    """
    One preloader per scope, sharing a single cache.

    The layer that mutates records holds a reference to
    ``invalidate_and_refresh`` and calls it after every change. At most
    ``max_sessions`` preloaders are kept; the least recently used one is
    dropped beyond that.
    """

    def __init__(
        self,
        store: RecordStore,
        cache: AggregationCache,
        max_sessions: int = 256,
        **preloader_options: Any,
    ):
        self.store = store
        self.cache = cache
        self.preloader_options = preloader_options
        self.sessions: LRUCache = LRUCache(maxsize=max(1, max_sessions))

    def session(self, scope: Optional[Scope] = None) -> DashboardPreloader:
        scope = scope or Scope()
        preloader = self.sessions.get(scope.cache_key)
        if preloader is None or preloader.scope != scope:
            preloader = DashboardPreloader(
                self.store, self.cache, scope=scope, **self.preloader_options
            )
            self.sessions[scope.cache_key] = preloader
        return preloader

    def end_session(self, scope: Optional[Scope] = None) -> None:
        scope = scope or Scope()
        self.sessions.pop(scope.cache_key, None)

    async def invalidate_and_refresh(self, scope: Optional[Scope] = None) -> None:
        """
        Signal that records changed.

        With a scope only that scope is rebuilt; without one every cached
        bundle is dropped and every open session is rebuilt.
        """
        if scope is not None:
            await self.session(scope).refresh()
            return
        self.cache.invalidate_all()
        for preloader in list(self.sessions.values()):
            await preloader.refresh()
