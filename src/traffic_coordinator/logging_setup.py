from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from traffic_coordinator.config import LoggingConfig

UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _level_to_int(level: str) -> int:
    mapping = {
        "CRITICAL": logging.CRITICAL,
        "ERROR": logging.ERROR,
        "WARNING": logging.WARNING,
        "INFO": logging.INFO,
        "DEBUG": logging.DEBUG,
    }
    return mapping.get(level.upper(), logging.INFO)


def _formatter() -> logging.Formatter:
    return logging.Formatter(
        fmt="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _clear_handlers(root: logging.Logger) -> None:
    for handler in list(root.handlers):
        root.removeHandler(handler)
        try:
            handler.close()
        except Exception:
            pass


def _route_uvicorn_to_root() -> None:
    # uvicorn installs its own handlers; let records flow to ours instead.
    for name in UVICORN_LOGGERS:
        uv_logger = logging.getLogger(name)
        for handler in list(uv_logger.handlers):
            uv_logger.removeHandler(handler)
        uv_logger.propagate = True


def _file_handler(config: LoggingConfig) -> logging.Handler:
    log_dir = Path(config.directory)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / config.filename
    if config.daily_rotation:
        return TimedRotatingFileHandler(
            filename=str(log_file),
            when="midnight",
            backupCount=config.retention_days,
            utc=config.utc,
            encoding="utf-8",
        )
    return logging.FileHandler(str(log_file), encoding="utf-8")


def configure_logging(config: LoggingConfig) -> None:
    root = logging.getLogger()
    _clear_handlers(root)
    root.setLevel(_level_to_int(config.level))

    fmt = _formatter()
    mode = config.output

    if mode in {"console", "both"}:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(fmt)
        root.addHandler(console_handler)

    if mode in {"file", "both"}:
        file_handler = _file_handler(config)
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    _route_uvicorn_to_root()

    logger = logging.getLogger(__name__)
    logger.info(
        "Logging configured: level=%s output=%s file=%s/%s rotation=%s",
        config.level,
        config.output,
        config.directory,
        config.filename,
        config.daily_rotation,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
