"""Database locking helpers and connection error checks."""

from __future__ import annotations

import threading
from types import TracebackType
from typing import Protocol


class Locker(Protocol):
    def acquire(self) -> bool: ...

    def release(self) -> None: ...

    def __enter__(self) -> bool: ...

    def __exit__(self, *exc: object) -> object: ...


class NoopLocker:
    """A lock that never blocks, for databases that handle concurrency."""

    def acquire(self) -> bool:
        return True

    def release(self) -> None:
        return None

    def __enter__(self) -> bool:
        return self.acquire()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


def new_locker(driver: str) -> Locker:
    """Return a real mutex for sqlite3 and a no-op lock for other drivers."""
    if driver == "sqlite3":
        return threading.Lock()
    return NoopLocker()


def is_conn_reset(err: BaseException | str | None) -> bool:
    """Return True if the error says the connection was reset by the peer."""
    if err is None:
        return False
    return "connection reset by peer" in str(err)