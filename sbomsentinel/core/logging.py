"""Structured logging configuration: structlog over stdlib logging, on stderr."""

from __future__ import annotations

import logging.config
import os
import sys

import structlog

_QUIET_LOGGERS = ("httpx", "httpcore")


def _shared_processors(log_format: str) -> list[structlog.types.Processor]:
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    # JSON consumers get tracebacks as data, terminals get them pre-formatted.
    if log_format == "json":
        processors.append(structlog.processors.dict_tracebacks)
    else:
        processors.append(structlog.processors.format_exc_info)
    processors.append(structlog.processors.UnicodeDecoder())
    return processors


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def setup_logging(level: str | None = None) -> None:
    """Configure structlog and stdlib logging for the CLI.

    Reads from environment variables:
        SBOMSENTINEL_LOG_LEVEL   log level (default: INFO)
        SBOMSENTINEL_LOG_FORMAT  console | json (default: console)

    An explicit *level* overrides ``SBOMSENTINEL_LOG_LEVEL``. Everything is
    written to stderr; stdout is reserved for command output.
    """
    log_level = (level or os.environ.get("SBOMSENTINEL_LOG_LEVEL", "INFO")).upper()
    log_format = os.environ.get("SBOMSENTINEL_LOG_FORMAT", "console").lower()
    shared = _shared_processors(log_format)

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    loggers: dict[str, dict] = {"sbomsentinel": {"level": log_level}}
    # HTTP client chatter only surfaces in debug runs.
    quiet_level = "DEBUG" if log_level == "DEBUG" else "WARNING"
    loggers.update({name: {"level": quiet_level} for name in _QUIET_LOGGERS})

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        _renderer(log_format),
                    ],
                },
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "structlog",
                },
            },
            "root": {"handlers": ["stderr"], "level": log_level},
            "loggers": loggers,
        }
    )
