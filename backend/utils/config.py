"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    admin_token: str | None
    seed_demo_data: bool

    provider_api_base: str
    provider_token_url: str
    provider_client_id: str | None
    provider_client_secret: str | None
    provider_reservations_scope: str
    provider_class_schedules_scope: str
    provider_page_size: int
    provider_max_pages: int
    provider_request_timeout_seconds: float
    provider_token_expiry_buffer_seconds: int
    provider_token_default_ttl_seconds: int

    availability_proximity_minutes: int
    availability_dedup_overlap_ratio: float
    availability_missing_pattern_policy: str
    availability_adapter_workers: int
    availability_date_regex: str

    resolver_alias_cache_ttl_seconds: int
    resolver_persist_heuristic_matches: bool

    class_active_statuses: tuple[str, ...]
    class_placeholder_rooms: tuple[str, ...]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests derive variants with replace()."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Building Ops Availability"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_path=Path(
            os.getenv("DATABASE_PATH", str(PROJECT_ROOT / "data" / "building_ops.db"))
        ),
        admin_token=os.getenv("ADMIN_TOKEN") or None,
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
        provider_api_base=os.getenv(
            "PROVIDER_API_BASE", "https://api.veracross.com/school/v3"
        ).rstrip("/"),
        provider_token_url=os.getenv(
            "PROVIDER_TOKEN_URL", "https://accounts.veracross.com/school/oauth/token"
        ),
        provider_client_id=os.getenv("PROVIDER_CLIENT_ID") or None,
        provider_client_secret=os.getenv("PROVIDER_CLIENT_SECRET") or None,
        provider_reservations_scope=os.getenv(
            "PROVIDER_RESERVATIONS_SCOPE", "resource_reservations:list"
        ),
        provider_class_schedules_scope=os.getenv(
            "PROVIDER_CLASS_SCHEDULES_SCOPE",
            "academics.class_schedules:list academics.classes:list",
        ),
        provider_page_size=_env_int("PROVIDER_PAGE_SIZE", 1000),
        provider_max_pages=_env_int("PROVIDER_MAX_PAGES", 50),
        provider_request_timeout_seconds=_env_float("PROVIDER_REQUEST_TIMEOUT_SECONDS", 15.0),
        provider_token_expiry_buffer_seconds=_env_int("PROVIDER_TOKEN_EXPIRY_BUFFER_SECONDS", 300),
        provider_token_default_ttl_seconds=_env_int("PROVIDER_TOKEN_DEFAULT_TTL_SECONDS", 3600),
        availability_proximity_minutes=_env_int("AVAILABILITY_PROXIMITY_MINUTES", 15),
        availability_dedup_overlap_ratio=_env_float("AVAILABILITY_DEDUP_OVERLAP_RATIO", 0.8),
        availability_missing_pattern_policy=os.getenv(
            "AVAILABILITY_MISSING_PATTERN_POLICY", "always"
        ).strip().lower(),
        availability_adapter_workers=_env_int("AVAILABILITY_ADAPTER_WORKERS", 3),
        availability_date_regex=r"^\d{4}-\d{2}-\d{2}$",
        resolver_alias_cache_ttl_seconds=_env_int("RESOLVER_ALIAS_CACHE_TTL_SECONDS", 300),
        resolver_persist_heuristic_matches=_env_bool("RESOLVER_PERSIST_HEURISTIC_MATCHES", True),
        class_active_statuses=("active", "future"),
        class_placeholder_rooms=("", "<none specified>", "none", "tba", "n/a"),
    )
