"""weakvaluedicts: thread-safe mappings that hold their values weakly."""

from __future__ import annotations

from weakvaluedicts.config import Settings, settings
from weakvaluedicts.errors import ConstructionError, KeyNotFound, WeakValueDictError
from weakvaluedicts.locking import ExclusionLock
from weakvaluedicts.mapping import WeakValueDict
from weakvaluedicts.notify import ReclaimNotifier, Reaper, WeakHandle, stop_reapers
from weakvaluedicts.slot import WeakSlot

__all__ = [
    "ConstructionError",
    "ExclusionLock",
    "KeyNotFound",
    "Reaper",
    "ReclaimNotifier",
    "Settings",
    "WeakHandle",
    "WeakSlot",
    "WeakValueDict",
    "WeakValueDictError",
    "settings",
    "stop_reapers",
]
