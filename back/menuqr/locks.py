"""
Per-key serialization points.

FastAPI runs sync endpoints in a thread pool, so an in-process lock per
restaurant serializes check-then-write sequences inside one worker. Across
workers the row lock taken by `lock_row` does the same job on databases that
support SELECT ... FOR UPDATE; SQLite ignores the clause.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from sqlmodel import Session, SQLModel, select


@dataclass
class _Entry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0  # Holders plus waiters


_locks: dict[tuple[str, int], _Entry] = {}
_registry_lock = threading.Lock()


@contextmanager
def serialized(scope: str, key: int) -> Iterator[None]:
    """Hold the lock for (scope, key); the entry is dropped once nobody uses it."""
    with _registry_lock:
        entry = _locks.setdefault((scope, key), _Entry())
        entry.users += 1
    try:
        with entry.lock:
            yield
    finally:
        with _registry_lock:
            entry.users -= 1
            if entry.users == 0:
                del _locks[(scope, key)]


def lock_row(session: Session, model: type[SQLModel], key: int) -> SQLModel | None:
    """Reload a row FOR UPDATE; the lock lasts until the session commits or rolls back."""
    statement = (
        select(model)
        .where(model.id == key)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return session.exec(statement).first()
