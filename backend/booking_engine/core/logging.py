"""
Structured logging configuration using structlog.
Outputs JSON in production, pretty-printed in development.

Request and studio ids bound by the middleware, and booking ids bound with
booking_log_context() outside a request (the sweeper), are merged into every
event through contextvars. Credit amounts and timestamps are rendered as
strings so ledger events serialize the same way in both outputs.
"""

import logging
import sys
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Iterator, Optional

import structlog
from structlog.types import EventDict, WrappedLogger

from booking_engine.core.config import get_settings

SERVICE_NAME = "booking-engine"


def add_service_info(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag every event with the service and deployment it came from."""
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("environment", get_settings().ENVIRONMENT)
    return event_dict


def render_domain_values(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
        elif isinstance(value, (datetime, date)):
            event_dict[key] = value.isoformat()
    return event_dict


@contextmanager
def booking_log_context(
    booking_id: Optional[int] = None,
    trainer_id: Optional[int] = None,
    client_id: Optional[int] = None,
    studio_id: Optional[int] = None,
) -> Iterator[None]:
    """Bind the given ids (None ones are skipped) for the duration of the block."""
    ids = {
        "booking_id": booking_id,
        "trainer_id": trainer_id,
        "client_id": client_id,
        "studio_id": studio_id,
    }
    with structlog.contextvars.bound_contextvars(**{k: v for k, v in ids.items() if v is not None}):
        yield


def setup_logging() -> None:
    settings = get_settings()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        add_service_info,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        render_domain_values,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.ENVIRONMENT == "production":
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Records from uvicorn and sqlalchemy go through the same processors
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    # The API and the sweeper process both call this; keep one handler
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
