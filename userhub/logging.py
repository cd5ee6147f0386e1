"""
Structured logging configuration for userhub.

Uses structlog with orjson serialization for JSON lines in production, and
colored console output for development.  Every event is stamped with the
service identity (name, version, environment) set at startup.
"""

import logging
import sys
from typing import Any

import orjson
import structlog

SERVICE_NAME = "userhub"


def _orjson_renderer(logger: object, name: str, event_dict: dict[str, object]) -> str:
    """Render log events as JSON using orjson."""
    return orjson.dumps(event_dict, option=orjson.OPT_NON_STR_KEYS, default=str).decode("utf-8")


def _identity_processor(identity: dict[str, str]) -> structlog.types.Processor:
    """Build a processor that adds ``identity`` without overwriting event keys."""

    def add_identity(logger: object, name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        for key, value in identity.items():
            event_dict.setdefault(key, value)
        return event_dict

    return add_identity


def setup_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
    version: str | None = None,
    environment: str | None = None,
) -> None:
    """Configure structlog for the service.

    Args:
        json_output: If True, emit JSON lines (for production).
                     If False, emit colored console output (for development).
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR).
        version: Deployed version, added to every event when given.
        environment: Deployment environment name, added to every event when given.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))

    identity = {"service": SERVICE_NAME}
    if version:
        identity["version"] = version
    if environment:
        identity["environment"] = environment

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _identity_processor(identity),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Any
    if json_output:
        renderer = _orjson_renderer
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        handler.setFormatter(formatter)


def get_logger(name: str) -> Any:
    """Get a named structlog logger."""
    return structlog.get_logger(name)
