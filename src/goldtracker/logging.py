"""structlog setup for the tracker.

All output goes through the standard library root logger, so records from
uvicorn and aiosqlite are rendered by the same formatter as ours. Every
line carries the service name, bound once at startup as a context variable
and inherited by the scheduler task and each request handler.
"""

import logging
from typing import IO, Literal

import structlog

SERVICE_NAME = "gold-tracker"

LogFormat = Literal["console", "json"]

# Libraries that log every request or statement at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "uvicorn.access")


def _renderer(log_format: LogFormat) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(
    log_level: str = "INFO",
    log_format: LogFormat = "console",
    service: str = SERVICE_NAME,
    stream: IO[str] | None = None,
) -> None:
    """Route structlog and stdlib logging through one handler.

    Args:
        log_level: Root level name ("DEBUG", "INFO", ...).
        log_format: "json" for one JSON object per line, "console" for
            human-readable output.
        service: Value of the ``service`` field on every line.
        stream: Output stream; stderr when None.
    """
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_format),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
