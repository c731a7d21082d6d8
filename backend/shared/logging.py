"""Launcher logging: structlog events rendered by stdlib handlers.

Every run logs to stdout. When a log directory is configured, the run also
gets its own file named after its start time, so each launcher session can
be attached to a bug report on its own.

Environment variables:
- LOG_FORMAT: ``json`` or ``console`` (default when unset).
- LOG_LEVEL: ``DEBUG``, ``INFO`` (default), ``WARNING``, ``ERROR`` or ``CRITICAL``.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Collection, MutableMapping
    from typing import Any

LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

_LOG_FORMATS = frozenset({"json", "console", ""})
_LOG_LEVELS = frozenset({"debug", "info", "warning", "error", "critical"})

# httpx/httpcore log every directory poll at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "psutil")


def _serialize_enums(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Log freshness states, launch methods and other enums by their value."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
        elif isinstance(value, dict):
            event_dict[key] = {k: v.value if isinstance(v, Enum) else v for k, v in value.items()}
    return event_dict


def configure_structlog() -> None:
    """Send structlog events to stdlib logging; handlers decide how they are rendered.

    Tracebacks are formatted by each handler's ProcessorFormatter, not here.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _serialize_enums,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def _is_test() -> bool:
    return "pytest" in sys.modules


def _env_choice(name: str, default: str, choices: Collection[str]) -> str:
    value = os.environ.get(name, default).strip().lower()
    if value not in choices:
        allowed = ", ".join(sorted(c for c in choices if c))
        msg = f"Invalid {name}={value!r}. Expected one of: {allowed}."
        raise ValueError(msg)
    return value


def _with_renderer(handler: logging.Handler, *, json_mode: bool, colors: bool) -> logging.Handler:
    renderer = structlog.processors.JSONRenderer() if json_mode else structlog.dev.ConsoleRenderer(colors=colors)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        ),
    )
    return handler


def _run_log_path(log_dir: Path | str) -> Path:
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    started = datetime.now(tz=UTC).strftime(LOG_FILE_TIMESTAMP_FORMAT)
    return directory / f"{started}.log"


def setup_logging(
    log_dir: Path | str | None = None,
    level: int | None = None,
) -> Path | None:
    """Configure logging for one launcher run.

    ``level`` overrides LOG_LEVEL. Returns the run's log file, or None when
    no ``log_dir`` is given (or under pytest, which never writes log files).
    Raises ValueError for an unknown LOG_FORMAT or LOG_LEVEL.
    """
    json_mode = _env_choice("LOG_FORMAT", "", _LOG_FORMATS) == "json"
    if level is None:
        level = logging.getLevelNamesMapping()[_env_choice("LOG_LEVEL", "info", _LOG_LEVELS).upper()]

    configure_structlog()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.addHandler(_with_renderer(logging.StreamHandler(sys.stdout), json_mode=json_mode, colors=sys.stdout.isatty()))

    if log_dir is None or _is_test():
        return None

    path = _run_log_path(log_dir)
    root.addHandler(_with_renderer(logging.FileHandler(path, encoding="utf-8"), json_mode=json_mode, colors=False))
    return path
