from __future__ import annotations

from typing import Generic, TypeVar

from weakvaluedicts.notify import WeakHandle

K = TypeVar("K")
V = TypeVar("V")


class WeakSlot(Generic[K, V]):
    """One table entry: a strongly held key and a weak handle to its value."""

    __slots__ = ("key", "handle")

    def __init__(self, key: K, handle: WeakHandle) -> None:
        self.key = key
        self.handle = handle

    def resolve(self) -> V | None:
        return self.handle()  # type: ignore[return-value]

    @property
    def alive(self) -> bool:
        return self.handle() is not None

    def __repr__(self) -> str:
        state = "live" if self.alive else "reclaimed"
        return f"<WeakSlot {self.key!r}; {state}>"


def resolve(slot: WeakSlot[K, V] | None) -> V | None:
    if slot is None:
        return None
    return slot.resolve()
