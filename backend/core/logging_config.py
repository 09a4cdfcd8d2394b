"""Logging for the API, the scheduler and the Celery worker.

structlog renders everything, including stdlib ``logging`` records from
services and third-party libraries, through one handler: console output in
development, one JSON object per line otherwise.

While a workflow runs, ``execution_context`` binds ``workflow_id`` and
``execution_id`` as context variables, so every log line emitted during the
run (engine, step executors, HTTP client) carries them.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator

import structlog
from app.config import get_settings

# Libraries whose INFO output is per-request chatter
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "aiosqlite")


def setup_logging() -> None:
    """Configure structlog and route the stdlib root logger through it."""
    settings = get_settings()

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development or settings.LOG_FORMAT == "text":
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

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
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if settings.SQLALCHEMY_ECHO else logging.WARNING
    )


@contextmanager
def execution_context(workflow_id: str, execution_id: str) -> Iterator[None]:
    """Tag log lines emitted inside the block with the run they belong to.

    Context variables are task-local, so concurrent runs keep their own ids.
    """
    with structlog.contextvars.bound_contextvars(
        workflow_id=workflow_id,
        execution_id=execution_id,
    ):
        yield
