from __future__ import annotations

import hashlib
from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock

from sqlalchemy import text
from sqlalchemy.orm import Session


class _KeyedLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = Lock()
        self.users = 0


class KeyedLockRegistry:
    """One in-process mutex per key, alive only while someone holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, _KeyedLock] = {}
        self._guard = Lock()

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyedLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


_registry = KeyedLockRegistry()


def advisory_key(key: str) -> int:
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


@contextmanager
def scheduling_lock(db: Session, key: str) -> Iterator[None]:
    """Serialise work on ``key`` within this process and, on PostgreSQL, across processes.

    The advisory lock is transaction scoped and released by the caller's
    commit or rollback.
    """
    with _registry.hold(key):
        if db.get_bind().dialect.name == "postgresql":
            db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": advisory_key(key)})
        yield


def publication_lock_key(tenant_id: str, academic_period: str) -> str:
    return f"publish|{tenant_id}|{academic_period}"


def classroom_lock_key(classroom_id: str) -> str:
    return f"classroom|{classroom_id}"
