"""Structured logging for provisioning runs.

Every event carries the run it belongs to (``run_id``, bound through
contextvars so concurrent resource tasks inherit it) and, inside a
resource's lifecycle, the resource name and kind.
"""

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure structlog/standard logging bridge."""

    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(default=str),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level, format="%(message)s")


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def run_context(run_id: Optional[str] = None, **kwargs: Any) -> Iterator[str]:
    """Bind ``run_id`` for every event logged inside the block.

    Tasks created inside the block copy the context, so resource tasks
    started by a run keep logging its id after the block exits.
    """
    run_id = run_id or new_run_id()
    with structlog.contextvars.bound_contextvars(run_id=run_id, **kwargs):
        yield run_id


def bind_resource(resource: Any, **kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Logger bound to a resource's name and kind (plus extra fields)."""

    logger = structlog.get_logger()
    return logger.bind(resource=resource.name, kind=resource.kind.value, **kwargs)
