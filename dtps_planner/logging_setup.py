"""Central logging configuration for the meal-plan scheduler.

Two stdlib loggers share one set of handlers: ``dtps_planner.history`` for
application and infrastructure code (tagged through :class:`TaggedLogger`)
and ``dtps_planner.domain`` for the infrastructure-free domain layer, whose
records are tagged ``DOM``.
"""

from __future__ import annotations

import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from dtps_planner.config import get_env, settings

LOGGER_NAME = "dtps_planner.history"
DOMAIN_LOGGER_NAME = "dtps_planner.domain"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5 MB per log file
DEFAULT_BACKUP_COUNT = 7
DOMAIN_TAG = "DOM"

_configured = False

# Default tag map per module keyword
TAG_MAP = {
    "freeze": "FRZ",
    "allowance": "ALLOW",
    "scheduler": "PLAN",
    "services": "PLAN",
    "postgres": "DB",
    "db_conn": "DB",
    "api": "API",
    "cli": "CLI",
    "status": "SYS",
}


class TaggedLogger(logging.LoggerAdapter):
    """Logger adapter that stamps every record with a planner tag."""

    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        extra.setdefault("tag", self.extra["tag"])
        return msg, kwargs


class _DefaultTagFilter(logging.Filter):
    """Give untagged records (domain code, third-party loggers) a tag."""

    def __init__(self, tag: str) -> None:
        super().__init__()
        self.tag = tag

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "tag"):
            record.tag = self.tag
        return True


def _resolve_level(level: Optional[str]) -> int:
    candidate = str(level or get_env("PLANNER_LOG_LEVEL", default="INFO")).upper()
    numeric_level = logging.getLevelName(candidate)
    if isinstance(numeric_level, int):
        return numeric_level
    print(f"Planner logger: unknown log level '{candidate}', defaulting to INFO.", file=sys.stderr)
    return logging.INFO


def _build_handlers(log_path: Path, max_bytes: int, backup_count: int) -> List[logging.Handler]:
    formatter = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] [%(tag)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    formatter.converter = time.gmtime

    handlers: List[logging.Handler] = []
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        )
    except OSError as exc:
        print(f"Planner logger: unable to access log file {log_path}: {exc}", file=sys.stderr)

    if get_env("PLANNER_LOG_TO_CONSOLE", default=True):
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure_logging(
    *,
    log_path: Optional[Path] = None,
    level: Optional[str] = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> logging.Logger:
    """(Re)build the planner handlers and return the history logger.

    Calling it again replaces the previous handlers, so tests can point the
    log at a temporary file.
    """
    global _configured
    reset_logging()

    resolved_path = Path(log_path) if log_path is not None else settings.log_path
    handlers = _build_handlers(resolved_path, max_bytes, backup_count)
    numeric_level = _resolve_level(level)

    for name, default_tag in ((LOGGER_NAME, "GEN"), (DOMAIN_LOGGER_NAME, DOMAIN_TAG)):
        logger = logging.getLogger(name)
        logger.setLevel(numeric_level)
        logger.propagate = False
        logger.filters = [_DefaultTagFilter(default_tag)]
        for handler in handlers:
            logger.addHandler(handler)

    _configured = True
    return logging.getLogger(LOGGER_NAME)


def get_logger(tag: str = "GEN") -> TaggedLogger:
    """Return a tagged planner logger, configuring handlers on first use."""

    if not _configured:
        configure_logging()
    return TaggedLogger(logging.getLogger(LOGGER_NAME), {"tag": tag})


def get_tag_for_module(module_name: str) -> str:
    """Infer a logging tag from the module name."""
    module_name = module_name.lower()
    for key, tag in TAG_MAP.items():
        if key in module_name:
            return tag
    return "GEN"


def reset_logging() -> None:
    """Close and detach the planner handlers."""

    global _configured
    closed = set()
    for name in (LOGGER_NAME, DOMAIN_LOGGER_NAME):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            if id(handler) not in closed:
                handler.close()
                closed.add(id(handler))
    _configured = False
