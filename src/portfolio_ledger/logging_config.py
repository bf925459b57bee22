"""structlog setup for the ledger CLI and services.

Log lines go to stderr so command output on stdout stays parseable. The
console renderer is used for development; production defaults to JSON
lines tagged with the app name and environment. Decimal fields are
rendered as plain strings in both formats.
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from portfolio_ledger.config import Settings, get_settings


def _decimals_as_strings(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Log ``Decimal("0.5")`` as ``0.5`` rather than its repr."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def _app_fields(settings: Settings) -> Processor:
    def add_app_fields(
        logger: WrappedLogger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        event_dict.setdefault("app", settings.app_name)
        event_dict.setdefault("environment", settings.environment.value)
        return event_dict

    return add_app_fields


def build_processors(settings: Settings) -> list[Processor]:
    """Processor chain for the configured log format."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        _decimals_as_strings,
    ]
    if settings.log_format == "json":
        processors += [
            _app_fields(settings),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    return processors


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Safe to call more than once; a log file is only attached once.
    """
    if settings is None:
        settings = get_settings()

    log_level = getattr(logging, settings.log_level.value)

    structlog.configure(
        processors=build_processors(settings),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level)
    logging.getLogger().setLevel(log_level)

    if settings.log_file:
        _attach_log_file(settings.log_file, log_level)


def _attach_log_file(log_file: Path, level: int) -> None:
    root = logging.getLogger()
    target = os.path.abspath(log_file)
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return

    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(message)s"))
    root.addHandler(file_handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, e.g. ``get_logger(__name__)``."""
    return structlog.stdlib.get_logger(name)


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Bind fields to every log line emitted inside the block.

    Fields that are None are left out, so optional ids can be passed as is::

        with log_context(sync_job_id=job.id, exchange_id=job.exchange_id):
            queue.run_claimed(job)
    """
    bound = {key: value for key, value in fields.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield
