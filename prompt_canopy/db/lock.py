"""Advisory file locking via an exclusive-create sidecar marker.

The lock for ``path`` is the file ``path + ".lock"``. Its existence and mtime
are the whole protocol: whoever creates it holds the lock, and a marker older
than the stale threshold is presumed abandoned and removed by the next
acquirer. Locks are not reentrant.
"""

from __future__ import annotations

import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog

from prompt_canopy.core.errors import LockTimeoutError
from prompt_canopy.db.models import LOCK_RETRY_SECONDS, LOCK_STALE_SECONDS, LOCK_TIMEOUT_SECONDS

logger = structlog.get_logger()


def lock_path(path: str | Path) -> Path:
    return Path(f"{path}.lock")


def acquire_lock(
    path: str | Path,
    *,
    timeout: float = LOCK_TIMEOUT_SECONDS,
    stale_after: float = LOCK_STALE_SECONDS,
    poll_interval: float = LOCK_RETRY_SECONDS,
) -> None:
    """Block until the lock for ``path`` is held, or raise LockTimeoutError."""
    marker = lock_path(path)
    deadline = time.monotonic() + timeout

    while time.monotonic() < deadline:
        try:
            fd = os.open(marker, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            pass
        else:
            os.close(fd)
            logger.debug("lock.acquired", path=str(path))
            return

        try:
            age = time.time() - marker.stat().st_mtime
        except FileNotFoundError:
            # Released between our create attempt and the stat
            continue

        if age > stale_after:
            try:
                marker.unlink()
            except FileNotFoundError:
                pass
            logger.warning("lock.stale_reclaimed", path=str(path), age_seconds=round(age, 3))
            continue

        time.sleep(poll_interval)

    logger.warning("lock.timeout", path=str(path), timeout=timeout)
    raise LockTimeoutError(path, timeout)


def release_lock(path: str | Path) -> None:
    """Remove the marker. A marker that is already gone is not an error."""
    try:
        lock_path(path).unlink()
    except FileNotFoundError:
        return
    logger.debug("lock.released", path=str(path))


@contextmanager
def file_lock(
    path: str | Path,
    *,
    timeout: float = LOCK_TIMEOUT_SECONDS,
    stale_after: float = LOCK_STALE_SECONDS,
    poll_interval: float = LOCK_RETRY_SECONDS,
) -> Iterator[None]:
    """Hold the lock for ``path`` for the duration of the ``with`` block."""
    acquire_lock(path, timeout=timeout, stale_after=stale_after, poll_interval=poll_interval)
    try:
        yield
    finally:
        release_lock(path)
