from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI

from traffic_coordinator import __version__
from traffic_coordinator.api.routes import (
    create_chat_router,
    create_hit_router,
    create_status_router,
)
from traffic_coordinator.chat.interface import ChatInterface
from traffic_coordinator.chat.notifier import OutboxNotifier
from traffic_coordinator.config import AppConfig, load_config
from traffic_coordinator.coordinator.session_coordinator import SessionCoordinator
from traffic_coordinator.diagnostics import diagnostics_payload, health_payload, readiness_payload
from traffic_coordinator.housekeeping import DailyResetScheduler
from traffic_coordinator.logging_setup import configure_logging, get_logger
from traffic_coordinator.storage.store import PersistenceStore


def _ensure_runtime_dirs(config: AppConfig) -> None:
    config.storage.data_directory.mkdir(parents=True, exist_ok=True)
    if config.logging.output in {"file", "both"}:
        config.logging.directory.mkdir(parents=True, exist_ok=True)


def build_services(config: AppConfig) -> dict[str, Any]:
    _ensure_runtime_dirs(config)
    store = PersistenceStore(
        config.storage.data_directory,
        write_retries=config.storage.write_retries,
        retry_backoff_seconds=config.storage.retry_backoff_seconds,
    )
    coordinator = SessionCoordinator.from_config(config, store=store)
    notifier = OutboxNotifier()
    chat = ChatInterface(
        coordinator=coordinator,
        notifier=notifier,
        ranking_limit=config.ranking.limit,
    )
    reset_scheduler = DailyResetScheduler(
        ranking=coordinator.ranking,
        fan_out=chat.notify_all,
        reset_message=config.ranking.reset_message,
        reset_time=config.ranking.reset_hour_minute(),
    )
    return {
        "config": config,
        "store": store,
        "coordinator": coordinator,
        "notifier": notifier,
        "chat": chat,
        "reset_scheduler": reset_scheduler,
    }


def create_app(config_path: str | Path | None = None) -> FastAPI:
    config = load_config(config_path)
    configure_logging(config.logging)
    logger = get_logger(__name__)
    logger.info("Initializing traffic coordinator app...")

    services = build_services(config)
    logger.info(
        "Services initialized (data_dir=%s, max_write_stall=%.2fs, duration=%.0fs, interval=%.1fs, daily_reset=%s)",
        config.storage.data_directory,
        config.storage.max_write_stall_seconds(),
        config.session.duration_seconds,
        config.session.status_interval_seconds,
        config.ranking.daily_reset,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        coordinator: SessionCoordinator = services["coordinator"]
        reset_scheduler: DailyResetScheduler = services["reset_scheduler"]
        restored = coordinator.restore()
        if restored is not None:
            logger.info("Resumed session for owner=%s after restart.", restored.owner_id)
        if config.ranking.daily_reset:
            reset_scheduler.start()
        try:
            yield
        finally:
            reset_scheduler.cancel()
            coordinator.shutdown()
            logger.info("Traffic coordinator stopped.")

    app = FastAPI(title="Traffic Coordinator", version=__version__, lifespan=lifespan)
    app.state.services = services

    endpoints = config.diagnostics.endpoints

    @app.get(endpoints.health, tags=["diagnostics"])
    async def healthz() -> dict[str, Any]:
        return health_payload()

    @app.get(endpoints.readiness, tags=["diagnostics"])
    async def readyz() -> dict[str, Any]:
        return readiness_payload(config, store=services["store"])

    @app.get(endpoints.diagnostics, tags=["diagnostics"])
    async def diagnostics() -> dict[str, Any]:
        return diagnostics_payload(
            config=config,
            coordinator=services["coordinator"],
            store=services["store"],
        )

    app.include_router(create_status_router())
    app.include_router(create_chat_router())
    # Catch-all hit route goes last so it does not shadow the routes above.
    app.include_router(create_hit_router())

    logger.info(
        "Diagnostics routes active (%s, %s, %s)",
        endpoints.health,
        endpoints.readiness,
        endpoints.diagnostics,
    )

    return app
