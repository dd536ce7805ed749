from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator

CONFIG_ENV_VAR = "TRAFFIC_COORDINATOR_CONFIG"
DEFAULT_CONFIG_PATH = Path("config.yaml")
RESET_TIME_RE = re.compile(r"^(?P<hour>[01]\d|2[0-3]):(?P<minute>[0-5]\d)$")


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080


class SessionConfig(BaseModel):
    duration_seconds: float = Field(default=200.0, gt=0)
    status_interval_seconds: float = Field(default=5.0, gt=0)
    domain: str = "http://localhost:8080"
    token_prefix: str = "/target_"
    token_bytes: int = 16

    @field_validator("token_bytes")
    @classmethod
    def _token_bytes_floor(cls, value: int) -> int:
        if value < 16:
            raise ValueError("session.token_bytes must be at least 16.")
        return value

    @field_validator("token_prefix")
    @classmethod
    def _token_prefix_is_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("session.token_prefix must start with '/'.")
        return value


class StorageConfig(BaseModel):
    data_directory: Path = Path("./data")
    # Retries sleep on the event loop thread while the coordinator lock is held,
    # so the total backoff per write is capped.
    write_retries: int = Field(default=3, ge=1, le=5)
    retry_backoff_seconds: float = Field(default=0.05, ge=0, le=0.2)

    def max_write_stall_seconds(self) -> float:
        return (self.write_retries - 1) * self.retry_backoff_seconds


class RankingConfig(BaseModel):
    limit: int = Field(default=5, ge=1)
    daily_reset: bool = True
    reset_time: str = "00:00"
    reset_message: str = (
        "The daily ranking has been reset. Start a new session and climb to the top!"
    )

    @field_validator("reset_time")
    @classmethod
    def _reset_time_format(cls, value: str) -> str:
        if not RESET_TIME_RE.match(value.strip()):
            raise ValueError("ranking.reset_time must be HH:MM (24h).")
        return value.strip()

    def reset_hour_minute(self) -> tuple[int, int]:
        match = RESET_TIME_RE.match(self.reset_time)
        assert match is not None
        return int(match.group("hour")), int(match.group("minute"))


class LoggingConfig(BaseModel):
    level: str = "INFO"
    output: Literal["console", "file", "both"] = "console"
    directory: Path = Path("./logs")
    filename: str = "traffic-coordinator.log"
    daily_rotation: bool = True
    retention_days: int = 7
    utc: bool = False


class DiagnosticsEndpoints(BaseModel):
    health: str = "/healthz"
    readiness: str = "/readyz"
    diagnostics: str = "/diagnostics"


class DiagnosticsConfig(BaseModel):
    endpoints: DiagnosticsEndpoints = Field(default_factory=DiagnosticsEndpoints)


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    diagnostics: DiagnosticsConfig = Field(default_factory=DiagnosticsConfig)


def _resolve_config_path(config_path: str | Path | None) -> Path | None:
    if config_path:
        return Path(config_path)
    from_env = os.environ.get(CONFIG_ENV_VAR, "").strip()
    if from_env:
        return Path(from_env)
    if DEFAULT_CONFIG_PATH.exists():
        return DEFAULT_CONFIG_PATH
    return None


def load_config(config_path: str | Path | None = None) -> AppConfig:
    path = _resolve_config_path(config_path)
    if path is None:
        return AppConfig()
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    loaded: Any = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Config file must contain a mapping at the top level: {path}")
    return AppConfig.model_validate(loaded)
