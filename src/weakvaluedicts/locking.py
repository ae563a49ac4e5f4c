"""Exclusion lock guarding a map's backing table."""

from __future__ import annotations

import threading
from typing import Any, Callable, TypeVar

T = TypeVar("T")


class ExclusionLock:
    """Reentrant lock that can report whether any thread currently holds it.

    ``threading.RLock`` lets the owning thread re-acquire without blocking,
    which is what a reclamation hook running on that same thread must not do.
    ``locked()`` closes that gap: the hold depth and owner are only written by
    the owning thread, so the owner always sees its own hold. A release from a
    thread that does not hold the lock fails before touching either.
    """

    __slots__ = ("_lock", "_depth", "_owner")

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._depth = 0
        self._owner: int | None = None

    def acquire(self, blocking: bool = True) -> bool:
        if not self._lock.acquire(blocking):
            return False
        self._owner = threading.get_ident()
        self._depth += 1
        return True

    def release(self) -> None:
        if self._depth <= 0 or self._owner != threading.get_ident():
            raise RuntimeError("cannot release un-acquired lock")
        self._depth -= 1
        if not self._depth:
            self._owner = None
        self._lock.release()

    def try_acquire(self) -> bool:
        if self._depth:
            return False
        return self.acquire(blocking=False)

    def locked(self) -> bool:
        return self._depth > 0

    def run(self, action: Callable[[], T]) -> T:
        with self:
            return action()

    def __enter__(self) -> "ExclusionLock":
        self.acquire()
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "locked" if self.locked() else "unlocked"
        return f"<ExclusionLock at {hex(id(self))}; {state}>"
