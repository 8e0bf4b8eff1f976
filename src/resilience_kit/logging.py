"""structlog wiring for resilience_kit.

Library modules log through ``structlog.get_logger(__name__)`` and the
``log_*`` helpers below, which also accept plain stdlib loggers. Importing the
package configures nothing; applications call ``configure_structlog`` (or
``ResilienceSettings.configure_logging``) once at startup.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from typing import Literal, Protocol, TextIO

import structlog
from structlog.typing import EventDict

LOGGER_NAME = "resilience_kit"

_LEVEL_NAMES = ("CRITICAL", "DEBUG", "ERROR", "INFO", "WARNING")
_DURATION_SUFFIX = "_seconds"
_DURATION_DIGITS = 6

_StdlibLogger = logging.Logger | logging.LoggerAdapter[logging.Logger]
_Level = Literal["debug", "info", "warning", "exception"]


class StructuredLogger(Protocol):
    """Anything accepting ``logger.<level>(event, **fields)`` calls."""

    def debug(self, event: str, **kwargs: object) -> None: ...

    def info(self, event: str, **kwargs: object) -> None: ...

    def warning(self, event: str, **kwargs: object) -> None: ...

    def exception(self, event: str, **kwargs: object) -> None: ...


def get_log_level_value(level: str) -> int:
    """Map a case-insensitive level name to its stdlib constant."""
    normalized = level.strip().upper()
    if normalized not in _LEVEL_NAMES:
        raise ValueError(f"log_level must be one of: {', '.join(_LEVEL_NAMES)}")
    return logging.getLevelNamesMapping()[normalized]


def _add_static_context(
    static_context: Mapping[str, object] | None,
) -> structlog.types.Processor:
    fields = {str(key): value for key, value in (static_context or {}).items()}

    def _merge_static_context(_: object, __: str, event_dict: EventDict) -> EventDict:
        for key, value in fields.items():
            event_dict.setdefault(key, value)
        return event_dict

    return _merge_static_context


def _round_durations(_: object, __: str, event_dict: EventDict) -> EventDict:
    """Round float ``*_seconds`` fields; jittered delays carry float noise."""
    for key, value in event_dict.items():
        if key.endswith(_DURATION_SUFFIX) and isinstance(value, float):
            event_dict[key] = round(value, _DURATION_DIGITS)
    return event_dict


def _select_renderer(stream: TextIO) -> structlog.types.Processor:
    if stream.isatty():
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def _shared_processors(
    static_context: Mapping[str, object] | None,
) -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        _add_static_context(static_context),
        structlog.stdlib.add_log_level,
        _round_durations,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _log(
    logger: StructuredLogger | _StdlibLogger,
    level: _Level,
    event: str,
    **fields: object,
) -> None:
    method = getattr(logger, level)
    if isinstance(logger, (logging.Logger, logging.LoggerAdapter)):
        method(event, extra=fields)
    else:
        method(event, **fields)


def log_debug(
    logger: StructuredLogger | _StdlibLogger, event: str, **fields: object
) -> None:
    """Log a debug event, such as a memo cache hit or miss."""
    _log(logger, "debug", event, **fields)


def log_info(
    logger: StructuredLogger | _StdlibLogger, event: str, **fields: object
) -> None:
    """Log an informational event."""
    _log(logger, "info", event, **fields)


def log_warning(
    logger: StructuredLogger | _StdlibLogger, event: str, **fields: object
) -> None:
    """Log a warning event."""
    _log(logger, "warning", event, **fields)


def log_exception(
    logger: StructuredLogger | _StdlibLogger, event: str, **fields: object
) -> None:
    """Log an error event with the active exception attached."""
    _log(logger, "exception", event, **fields)


def configure_structlog(
    *,
    log_level: str,
    static_context: Mapping[str, object] | None = None,
    stream: TextIO | None = None,
) -> structlog.stdlib.BoundLogger:
    """Route structlog and stdlib logging through one rendering handler.

    Calling it again replaces the previous configuration.

    Args:
        log_level: Case-insensitive stdlib level name.
        static_context: Fields added to every event that does not already
            carry them (for example ``{"service": "billing"}``).
        stream: Destination stream. Defaults to ``sys.stderr``; a TTY gets
            the console renderer, anything else gets JSON lines.

    Returns:
        The ``resilience_kit`` logger under the new configuration.
    """
    level_value = get_log_level_value(log_level)
    stream = sys.stderr if stream is None else stream
    shared = _shared_processors(static_context)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _select_renderer(stream),
            ],
        )
    )
    logging.basicConfig(
        format="%(message)s",
        handlers=[handler],
        level=level_value,
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            *shared,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.stdlib.get_logger(LOGGER_NAME)
