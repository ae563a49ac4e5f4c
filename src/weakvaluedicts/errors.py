from __future__ import annotations


class WeakValueDictError(Exception):
    """Base error for weak-value mapping failures."""


class ConstructionError(WeakValueDictError, TypeError):
    """Value type cannot be weakly referenced, so no map can hold it."""

    def __init__(self, value_type: object, detail: str | None = None) -> None:
        name = getattr(value_type, "__qualname__", repr(value_type))
        message = f"WeakValueDict cannot hold values of type {name}"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.value_type = value_type


class KeyNotFound(WeakValueDictError, KeyError):
    """Key has no live value (never inserted, deleted, or reclaimed)."""
