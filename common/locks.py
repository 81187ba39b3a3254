"""Per-resource mutual exclusion for check-and-insert sequences."""
from __future__ import annotations

import threading
import zlib
from contextlib import contextmanager
from typing import Dict, Iterator

from sqlalchemy import text
from sqlalchemy.orm import Session


class ResourceLockRegistry:
    """Hands out one ``threading.Lock`` per resource id.

    Locks are created on first use and kept for the life of the process; the
    number of distinct bookable resources in a practice is small.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def lock_for(self, resource_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(resource_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[resource_id] = lock
            return lock

    def __len__(self) -> int:
        return len(self._locks)


resource_locks = ResourceLockRegistry()


def advisory_key(resource_id: str) -> int:
    """Stable signed 32-bit key for ``pg_advisory_xact_lock``."""

    value = zlib.crc32(resource_id.encode("utf-8"))
    return value - (1 << 32) if value >= (1 << 31) else value


@contextmanager
def resource_lock(db: Session, resource_id: str, registry: ResourceLockRegistry = resource_locks) -> Iterator[None]:
    """Serialize writers on ``resource_id`` within and across processes.

    The in-process lock covers threads of this worker. On PostgreSQL a
    transaction-scoped advisory lock also covers other workers; it is released
    by the commit or rollback that ends the caller's unit of work, which must
    therefore happen inside this block.
    """

    with registry.lock_for(resource_id):
        if db.get_bind().dialect.name == "postgresql":
            db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": advisory_key(resource_id)})
        yield
