"""Bot logging, rendered by structlog through the stdlib root logger.

What ends up in the log:
- the outcome of every command, as ``command_name``, ``result`` and ``meta``;
- encounter games and group events starting and ending in a guild;
- every timer transition with the minutes left;
- group channels a broadcast could not reach;
- card database downloads and the number of cards cached.

While a command runs the router binds ``command`` and ``guild_id`` with
contextvars, so whatever the services log on its behalf carries both.

Environment variables:
- LOG_FORMAT: "json" for one JSON object per line, "console" or unset for
  readable output.
- LOG_LEVEL: "DEBUG", "INFO" (default), "WARNING", "ERROR" or "CRITICAL".
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
    from collections.abc import MutableMapping
    from typing import Any

LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

_LOG_FORMATS = {"json", "console", ""}
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# discord.py logs every gateway heartbeat, httpx every card download request.
_NOISY_LOGGERS = ("discord", "discord.gateway", "discord.http", "httpx", "httpcore")


def _plain(value: object) -> object:
    return value.value if isinstance(value, Enum) else value


def _serialize_enums(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Log timer states, stories and group stats by value, also inside a command's meta."""
    for key, value in event_dict.items():
        if isinstance(value, dict):
            event_dict[key] = {name: _plain(item) for name, item in value.items()}
        else:
            event_dict[key] = _plain(value)
    return event_dict


def _is_test() -> bool:
    return "pytest" in sys.modules


def _json_output() -> bool:
    log_format = os.environ.get("LOG_FORMAT", "").lower()
    if log_format not in _LOG_FORMATS:
        raise ValueError(f"Invalid LOG_FORMAT={log_format!r}. Must be 'json', 'console', or unset.")
    return log_format == "json"


def _level_from_env() -> int:
    name = os.environ.get("LOG_LEVEL", "INFO").upper()
    if name not in _LOG_LEVELS:
        raise ValueError(f"Invalid LOG_LEVEL={name!r}. Must be one of {', '.join(_LOG_LEVELS)}.")
    return logging.getLevelNamesMapping()[name]


def _attach(root: logging.Logger, handler: logging.Handler, *, json_output: bool, colors: bool) -> None:
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=colors)
    # tracebacks are rendered here, once per handler
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
    )
    root.addHandler(handler)


def setup_logging(
    log_dir: Path | str | None = None,
    level: int | None = None,
) -> Path | None:
    """Route the bot's structlog events to stdout, and to a file under log_dir.

    Calling it again replaces the handlers of the previous call. The file is
    named after the start time of the bot; its path is returned. Tests never
    get a file.
    """
    json_output = _json_output()
    if level is None:
        level = _level_from_env()

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

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _attach(root, logging.StreamHandler(sys.stdout), json_output=json_output, colors=sys.stdout.isatty())
    if log_dir is None or _is_test():
        return None

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    log_file = directory / f"{datetime.now(tz=UTC).strftime(LOG_FILE_TIMESTAMP_FORMAT)}.log"
    _attach(root, logging.FileHandler(log_file), json_output=json_output, colors=False)
    return log_file
