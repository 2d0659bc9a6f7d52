"""Detached side effects.

Non-critical work (expired session purge, logout token delete, last-login
stamp, courtesy emails) runs after the response is sent and may only log on
failure. Detached database work opens its own session since the request's
session is closed by then.
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from app.database import SessionLocal

logger = logging.getLogger("auth_service")

# Tests point this at their own session factory
_session_factory: Callable[[], Session] | None = None


@contextmanager
def detached_session() -> Iterator[Session]:
    """Open a session that outlives the request that scheduled the work."""
    factory = _session_factory or SessionLocal
    db = factory()
    try:
        yield db
    finally:
        db.close()


def _guarded(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    try:
        fn(*args, **kwargs)
    except Exception:
        logger.exception("Detached task %s failed", getattr(fn, "__name__", repr(fn)))


def run_detached(tasks: BackgroundTasks | None, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    """Run ``fn`` without blocking or failing the caller.

    With ``tasks`` the call is deferred until the response has been sent,
    otherwise it runs immediately. Errors are logged either way.
    """
    if tasks is None:
        _guarded(fn, *args, **kwargs)
        return
    tasks.add_task(_guarded, fn, *args, **kwargs)
