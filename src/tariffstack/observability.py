"""Run-scoped logging helpers.

Every request served by the API runs inside a :func:`run_scope`; log lines
emitted through :func:`log_event` carry the active run id in a ``payload``
mapping so they can be correlated with the ``X-Run-ID`` response header.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

_run_id_ctx: ContextVar[Optional[str]] = ContextVar("tariffstack_run_id", default=None)

RUN_ID_HEADER = "X-Run-ID"


def new_run_id() -> str:
    return uuid.uuid4().hex


def current_run_id() -> Optional[str]:
    return _run_id_ctx.get()


@contextmanager
def run_scope(run_id: Optional[str] = None) -> Iterator[str]:
    """Bind ``run_id`` (or a fresh one) for the duration of the block.

    An already bound id is reused when none is given, so nested scopes log
    under the outermost run.
    """

    value = (run_id or "").strip() or current_run_id() or new_run_id()
    token = _run_id_ctx.set(value)
    try:
        yield value
    finally:
        _run_id_ctx.reset(token)


def log_event(message: str, level: int = logging.INFO, **extra: object) -> None:
    """Log ``message`` with the active run id attached to its payload."""

    payload = {"run_id": current_run_id(), **extra}
    logger.log(level, message, extra={"payload": payload})
