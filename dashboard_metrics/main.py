import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional, Set

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .cache import AggregationCache
from .config import settings
from .models import DashboardSnapshot, PreloadState, Scope
from .preloader import DashboardRegistry
from .record_store import RecordStore, seed_demo_records
from .storage import InMemoryStorage, create_storage

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


class RecordPayload(BaseModel):
    payload: dict


storage = create_storage(backend=settings.storage_backend, path=settings.storage_path)
store = RecordStore(storage, settings.collection_names)
if isinstance(storage, InMemoryStorage):
    seed_demo_records(store, settings.default_seed_records)

cache = AggregationCache(
    max_entries=settings.cache_max_entries,
    default_ttl=settings.cache_ttl_seconds,
)
registry = DashboardRegistry(
    store,
    cache,
    max_sessions=settings.max_dashboard_sessions,
    ttl_seconds=settings.cache_ttl_seconds,
    stage_delay=settings.stage_delay_seconds,
    default_total_rooms=settings.default_total_rooms,
)

# Keeps scheduled refreshes referenced until they finish.
_background_tasks: Set[asyncio.Task] = set()


async def _sweep_cache_periodically(interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        cache.sweep()


@asynccontextmanager
async def lifespan(_: FastAPI):
    cache.init()
    sweeper = asyncio.create_task(
        _sweep_cache_periodically(settings.cache_sweep_interval_seconds)
    )
    try:
        yield
    finally:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass


app = FastAPI(
    title="Dashboard Metrics",
    version="0.1.0",
    description="Cached dashboard statistics over agency records with progressive refinement.",
    lifespan=lifespan,
)


def _scope(username: Optional[str], role: Optional[str]) -> Scope:
    return Scope(username=username, role=role)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/records/stats")
async def record_stats() -> dict:
    return {"collections": store.stats(), "storage": storage.metrics()}


@app.post("/records/{collection}")
async def add_record(collection: str, payload: RecordPayload) -> dict:
    try:
        record = store.append(collection, payload.payload)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    await registry.invalidate_and_refresh()
    return {"inserted": record}


@app.get("/dashboard")
async def dashboard(
    username: Optional[str] = None, role: Optional[str] = None
) -> DashboardSnapshot:
    preloader = registry.session(_scope(username, role))
    if preloader.state is PreloadState.IDLE:
        await preloader.preload_data()
        if preloader.state is PreloadState.BASE_READY:
            await preloader.load_data_by_priority()
    return preloader.snapshot()


async def _refresh(scope: Scope) -> None:
    await registry.invalidate_and_refresh(scope)


@app.post("/dashboard/refresh")
async def dashboard_refresh(
    username: Optional[str] = None,
    role: Optional[str] = None,
    async_mode: bool = False,
) -> dict:
    scope = _scope(username, role)
    if async_mode:
        task = asyncio.create_task(_refresh(scope))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        return {"status": "scheduled"}
    await _refresh(scope)
    return {"status": "completed", "snapshot": registry.session(scope).snapshot()}


@app.get("/cache/stats")
async def cache_stats() -> dict:
    return {"cache": cache.get_stats(), "sessions": sorted(registry.sessions)}


@app.delete("/cache")
async def clear_cache() -> dict:
    return {"invalidated": cache.invalidate_all()}
