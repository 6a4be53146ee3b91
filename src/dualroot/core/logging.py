"""
dualroot structured logging.

Everything is logged through structlog on top of the stdlib ``dualroot``
logger: a console handler on stderr at the configured level and a daily
file that always receives DEBUG. The file is the audit trail of what was
done to the disk, so every event carries the id of the run it belongs to.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

if TYPE_CHECKING:
    from dualroot.core.config import LoggingConfig

ROOT_LOGGER = "dualroot"


def add_timestamp(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add ISO format timestamp to log events."""
    event_dict["timestamp"] = datetime.now().isoformat()
    return event_dict


def add_log_level(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict["level"] = method_name.upper()
    return event_dict


def _build_handlers(config: LoggingConfig) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []

    if config.console_enabled:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(getattr(logging, config.level))
        handlers.append(console)

    if config.file_enabled:
        config.log_directory.mkdir(parents=True, exist_ok=True)
        log_file = config.log_directory / f"dualroot_{datetime.now():%Y%m%d}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)

    if not handlers:
        handlers.append(logging.NullHandler())
    return handlers


def setup_logging(config: LoggingConfig) -> None:
    """Configure structured logging for dualroot. Calling it again is a no-op."""
    root = logging.getLogger(ROOT_LOGGER)
    if root.handlers:
        return

    for handler in _build_handlers(config):
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    root.propagate = False

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_timestamp,
        add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if config.json_format:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name or ROOT_LOGGER)


def bind_run_context(**context: Any) -> None:
    """Attach ``context`` (run id, mode) to every event logged from now on."""
    structlog.contextvars.bind_contextvars(**context)


def clear_run_context() -> None:
    structlog.contextvars.clear_contextvars()


class OperationLogger:
    """
    Logs the start and the end of one step, with its duration.

    A step that raises is logged as failed and the exception propagates.
    """

    def __init__(
        self,
        operation: str,
        logger: structlog.stdlib.BoundLogger | None = None,
        **context: Any,
    ):
        self.operation = operation
        self.logger = (logger or get_logger()).bind(operation=operation, **context)
        self.start_time: datetime | None = None
        self.duration_seconds: float = 0.0

    def __enter__(self) -> OperationLogger:
        self.start_time = datetime.now()
        self.logger.info(f"Starting {self.operation}")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if self.start_time is not None:
            self.duration_seconds = (datetime.now() - self.start_time).total_seconds()

        if exc_type is None:
            self.logger.info(
                f"Completed {self.operation}",
                duration_seconds=self.duration_seconds,
            )
        else:
            self.logger.error(
                f"Failed {self.operation}",
                duration_seconds=self.duration_seconds,
                error_type=exc_type.__name__,
                error=str(exc_val),
            )
