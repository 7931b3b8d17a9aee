"""Cache-backed job locks for periodic tasks that move money."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from django.core.cache import cache

logger = logging.getLogger(__name__)

LOCK_PREFIX = "job-lock"


def _lock_key(name: str) -> str:
    return f"{LOCK_PREFIX}:{name}"


@contextmanager
def job_lock(name: str, timeout: int = 600) -> Iterator[bool]:
    """Yield True when the lock was taken, False when another run holds it.

    ``cache.add`` is atomic on the shared cache backends, so only one worker
    gets True. The timeout bounds how long a crashed worker can hold the lock.
    """
    key = _lock_key(name)
    acquired = cache.add(key, "locked", timeout)
    if not acquired:
        logger.warning(f"Job {name} is already running, skipping this run")
    try:
        yield acquired
    finally:
        if acquired:
            cache.delete(key)
