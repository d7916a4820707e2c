"""Structured logger for the Fireface SDK.

The SDK never reconfigures structlog globally; `build_logger()` returns a
self-contained JSON logger that an App hands to the clients it creates.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog

SERVICE_NAME = "fireface-sdk-python"


def build_logger(
    *,
    debug: bool = False,
    stream: TextIO | None = None,
    service: str = SERVICE_NAME,
) -> Any:
    """Build a JSON-rendering structlog logger bound with ``service``.

    Args:
        debug: Log at DEBUG level and add call-site information. Otherwise
            the level is INFO.
        stream: Output stream, defaults to stdout.
        service: Value of the ``service`` key on every event.
    """
    processors: list[Any] = [
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if debug:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                {
                    structlog.processors.CallsiteParameter.PATHNAME,
                    structlog.processors.CallsiteParameter.LINENO,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                }
            )
        )
    processors.append(structlog.processors.JSONRenderer())

    logger = structlog.wrap_logger(
        structlog.PrintLogger(stream or sys.stdout),
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if debug else logging.INFO
        ),
    )
    return logger.bind(service=service)
