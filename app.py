"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the repository, resolver, provider client and availability
engine, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import requests
from fastapi import FastAPI

from backend.controllers.alias_controller import router as alias_router
from backend.controllers.availability_controller import router as availability_router
from backend.domain.constraints import build_engine_config
from backend.repository.data_repository import DataRepository
from backend.services.auth_service import AuthService
from backend.services.availability_service import AvailabilityEngine
from backend.services.provider_client import ProviderTokenCache, ScheduleProviderClient
from backend.services.resolver_service import ResourceResolver
from backend.services.source_adapters import (
    ClassScheduleAdapter,
    LocalEventAdapter,
    ReservationAdapter,
)
from backend.utils.config import Settings, get_settings
from backend.utils.logger import configure_logging, get_logger


logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    session: Optional[requests.Session] = None,
) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every dependency is created here and injected via app.state. The
    provider token cache is shared by all requests of this app instance.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    http_session = session or requests.Session()

    # --- Repository (single SQLite connection factory) ---
    repository = DataRepository(settings)

    # --- Identity resolution and provider access ---
    resolver = ResourceResolver(repository=repository, settings=settings)
    token_cache = ProviderTokenCache(settings=settings, session=http_session)
    provider_client = ScheduleProviderClient(
        token_cache=token_cache,
        settings=settings,
        session=http_session,
    )

    # --- Source adapters and the shared engine (one validated config) ---
    engine_config = build_engine_config(settings)
    adapters = [
        LocalEventAdapter(repository=repository, settings=settings),
        ReservationAdapter(client=provider_client, resolver=resolver),
        ClassScheduleAdapter(
            client=provider_client,
            resolver=resolver,
            settings=settings,
            missing_pattern_policy=engine_config.missing_pattern_policy,
        ),
    ]
    engine = AvailabilityEngine(
        resolver=resolver,
        adapters=adapters,
        settings=settings,
        config=engine_config,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(availability_router)
    app.include_router(alias_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.resolver = resolver
    app.state.token_cache = token_cache
    app.state.provider_client = provider_client
    app.state.availability_engine = engine
    app.state.auth_service = AuthService(settings=settings)

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    The schema must exist before the demo catalog is seeded; seeding is
    skipped when resources are already present.
    """
    repository: DataRepository = app.state.repository
    settings: Settings = app.state.settings

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo resource catalog (skipped if not empty)")
        repository.seed_demo_data()

    if not settings.provider_client_id or not settings.provider_client_secret:
        logger.warning(
            "Startup: provider credentials missing; reservation and class sources will report failures"
        )

    logger.info("Startup complete | aliases=%s", repository.count_aliases())


# Module-level app object for uvicorn
app = create_app()
