from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Runtime configuration for the dashboard metrics service."""

    collection_names: List[str] = ["rooms", "clients", "bills", "reservations"]
    cache_ttl_seconds: float = 600.0
    cache_max_entries: int = 1024
    cache_sweep_interval_seconds: float = 60.0
    max_dashboard_sessions: int = 256
    stage_delay_seconds: float = 0.05
    default_total_rooms: int = 27
    default_seed_records: int = 5
    storage_backend: str = "memory"  # options: memory, sqlite
    storage_path: str = "data/dashboard.db"
    log_level: str = "INFO"


settings = Settings()
