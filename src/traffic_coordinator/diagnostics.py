from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from traffic_coordinator import __version__
from traffic_coordinator.config import AppConfig
from traffic_coordinator.coordinator.session_coordinator import SessionCoordinator
from traffic_coordinator.storage.store import PersistenceStore


def health_payload() -> dict[str, Any]:
    return {
        "status": "ok",
        "version": __version__,
        "time": datetime.now(timezone.utc).isoformat(),
    }


def readiness_payload(config: AppConfig, *, store: PersistenceStore) -> dict[str, Any]:
    data_dir = config.storage.data_directory
    ready = data_dir.exists() and data_dir.is_dir()
    return {
        "status": "ready" if ready else "not_ready",
        "data_directory": str(data_dir),
        "storage_degraded": store.status.failed_writes > 0,
    }


def diagnostics_payload(
    *,
    config: AppConfig,
    coordinator: SessionCoordinator,
    store: PersistenceStore,
) -> dict[str, Any]:
    snapshot = coordinator.status()
    return {
        "version": __version__,
        "coordinator": {
            "state": coordinator.state,
            "generation": coordinator.generation,
            "queue_length": len(coordinator.waiting()),
            "owner_id": snapshot.owner_id if snapshot else None,
            "request_count": snapshot.request_count if snapshot else None,
        },
        "session": {
            "duration_seconds": config.session.duration_seconds,
            "status_interval_seconds": config.session.status_interval_seconds,
            "domain": config.session.domain,
        },
        "ranking": {
            "limit": config.ranking.limit,
            "daily_reset": config.ranking.daily_reset,
            "reset_time": config.ranking.reset_time,
        },
        "storage": store.status.as_dict(),
    }
