"""Thread-safe mapping whose values are held through weak references."""

from __future__ import annotations

import abc
import logging
import weakref
from collections.abc import ItemsView, MutableMapping, ValuesView
from contextlib import contextmanager
from functools import partial
from typing import Any, Callable, Generic, Iterator, TypeVar

from weakvaluedicts.errors import ConstructionError, KeyNotFound
from weakvaluedicts.locking import ExclusionLock
from weakvaluedicts.notify import ReclaimNotifier, WeakHandle
from weakvaluedicts.slot import WeakSlot, resolve

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")
T = TypeVar("T")

_MISSING: Any = object()


def _check_value_type(value_type: object) -> None:
    if value_type is None or value_type is object:
        return
    if not isinstance(value_type, type):
        raise ConstructionError(value_type, "value_type must be a class")
    if isinstance(value_type, abc.ABCMeta):
        return
    if not value_type.__weakrefoffset__:
        raise ConstructionError(
            value_type, "its instances do not support weak references"
        )


def _reclaim_hook(
    map_ref: weakref.ReferenceType[WeakValueDict[Any, Any]],
    key: object,
    handle: WeakHandle,
) -> None:
    wvd = map_ref()
    if wvd is None:
        return
    wvd._reclaim(key, handle)


class WeakValuesView(ValuesView):
    def __iter__(self) -> Iterator[Any]:
        for _key, value in self._mapping._iter_items():
            yield value


class WeakItemsView(ItemsView):
    def __iter__(self) -> Iterator[tuple[Any, Any]]:
        yield from self._mapping._iter_items()


class WeakValueDict(MutableMapping, Generic[K, V]):
    """Mapping that drops an entry once nothing else keeps its value alive.

    Keys are held strongly; values only through weak handles. Every table
    access happens under one reentrant lock. When a value is reclaimed its
    hook tries to take the lock without blocking and removes the slot; if the
    lock is busy the hook goes back on the notifier's queue and retries the
    next time the lock is released (or the reaper runs).

    Removal is eventual. ``len()`` counts slots, so it can include values that
    are already gone; lookups, membership and iteration never report them.
    """

    def __init__(
        self,
        mapping: Any = None,
        /,
        *,
        value_type: type | None = None,
        notifier: ReclaimNotifier | None = None,
        **kwargs: V,
    ) -> None:
        _check_value_type(value_type)
        self.value_type = value_type
        self._table: dict[K, WeakSlot[K, V]] = {}
        self._lock = ExclusionLock()
        self._notifier = notifier if notifier is not None else ReclaimNotifier()
        self._hook = partial(_reclaim_hook, weakref.ref(self))
        if mapping is not None:
            self.update(mapping, **kwargs)
        elif kwargs:
            self.update(**kwargs)

    # -- locking -----------------------------------------------------------

    @contextmanager
    def _locked(self) -> Iterator[dict[K, WeakSlot[K, V]]]:
        try:
            with self._lock:
                yield self._table
        finally:
            if self._notifier.flush_on_release and not self._lock.locked():
                self._notifier.flush()

    def with_lock(self, action: Callable[[], T]) -> T:
        with self._locked():
            return action()

    def is_locked(self) -> bool:
        return self._lock.locked()

    # -- reclamation -------------------------------------------------------

    def _watch(self, key: K, value: V) -> WeakHandle:
        if self.value_type is not None and not isinstance(value, self.value_type):
            raise TypeError(
                f"expected {self.value_type.__qualname__} value, "
                f"got {type(value).__qualname__}"
            )
        return self._notifier.watch(value, partial(self._hook, key))

    def _store(
        self, table: dict[K, WeakSlot[K, V]], key: K, handle: WeakHandle
    ) -> None:
        previous = table.get(key)
        if previous is not None:
            key = previous.key
        table[key] = WeakSlot(key, handle)

    def _reclaim(self, key: K, handle: WeakHandle) -> None:
        # Runs wherever the interpreter reclaims the value, possibly on a
        # thread that is inside one of our locked sections. Never block here.
        if not self._lock.try_acquire():
            logger.debug("reclamation of %r deferred: lock busy", key)
            self._notifier.defer(partial(self._hook, key, handle))
            return
        try:
            slot = self._table.get(key)
            if slot is not None and slot.handle is handle:
                del self._table[key]
                logger.debug("removed reclaimed slot %r", key)
            else:
                logger.debug("stale reclamation of %r ignored", key)
        finally:
            self._lock.release()

    def reap(self) -> int:
        """Run deferred reclamation hooks now; return how many ran."""
        return self._notifier.flush()

    def pending_reclamations(self) -> int:
        return self._notifier.pending()

    # -- mapping protocol --------------------------------------------------

    def __setitem__(self, key: K, value: V) -> None:
        handle = self._watch(key, value)
        with self._locked() as table:
            self._store(table, key, handle)

    def __getitem__(self, key: K) -> V:
        with self._locked() as table:
            value = resolve(table.get(key))
        if value is None:
            raise KeyNotFound(key)
        return value

    def __delitem__(self, key: K) -> None:
        with self._locked() as table:
            value = resolve(table.pop(key, None))
        if value is None:
            raise KeyNotFound(key)

    def __contains__(self, key: object) -> bool:
        with self._locked() as table:
            return resolve(table.get(key)) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        with self._locked() as table:
            return len(table)

    def _iter_items(self) -> Iterator[tuple[K, V]]:
        with self._locked() as table:
            keys = list(table)
        for key in keys:
            with self._locked() as table:
                value = resolve(table.get(key))
            if value is not None:
                yield key, value

    def __iter__(self) -> Iterator[K]:
        for key, _value in self._iter_items():
            yield key

    def values(self) -> WeakValuesView:
        return WeakValuesView(self)

    def items(self) -> WeakItemsView:
        return WeakItemsView(self)

    def get(
        self,
        key: K,
        default: Any = None,
        *,
        factory: Callable[[], Any] | None = None,
    ) -> Any:
        with self._locked() as table:
            value = resolve(table.get(key))
        if value is not None:
            return value
        if factory is not None:
            return factory()
        return default

    def setdefault(self, key: K, default: V) -> V:  # type: ignore[override]
        with self._locked() as table:
            value = resolve(table.get(key))
            if value is None:
                value = default
                self._store(table, key, self._watch(key, value))
            return value

    def get_or_insert(self, key: K, factory: Callable[[], V]) -> V:
        """Return the live value for ``key``, creating it with ``factory`` if needed.

        The lookup and the insert happen under one lock hold, so racing callers
        for the same key see exactly one ``factory`` call and the same value.
        """
        with self._locked() as table:
            value = resolve(table.get(key))
            if value is None:
                value = factory()
                self._store(table, key, self._watch(key, value))
            return value

    def get_key(self, key: K, default: Any = None) -> Any:
        with self._locked() as table:
            slot = table.get(key)
            if slot is None or not slot.alive:
                return default
            return slot.key

    def delete(self, key: K) -> None:
        with self._locked() as table:
            table.pop(key, None)

    def pop(self, key: K, default: Any = _MISSING) -> Any:
        with self._locked() as table:
            value = resolve(table.pop(key, None))
        if value is not None:
            return value
        if default is _MISSING:
            raise KeyNotFound(key)
        return default

    def popitem(self) -> tuple[K, V]:
        with self._locked() as table:
            for key, slot in table.items():
                value = slot.resolve()
                if value is not None:
                    break
            else:
                raise KeyNotFound("popitem(): dictionary is empty")
            del table[key]
        return key, value

    def clear(self) -> None:
        with self._locked() as table:
            table.clear()

    def is_empty(self) -> bool:
        return len(self) == 0

    def filter_in_place(self, predicate: Callable[[K, V], bool]) -> None:
        with self._locked() as table:
            for key, slot in list(table.items()):
                value = slot.resolve()
                if value is None:
                    continue
                if not predicate(key, value) and table.get(key) is slot:
                    del table[key]

    def map_values_in_place(self, func: Callable[[V], V]) -> None:
        """Replace every live value with ``func(value)``.

        The results are stored weakly like any other value: unless the caller
        keeps them alive elsewhere they are reclaimed as soon as this returns.
        """
        with self._locked() as table:
            for key, slot in list(table.items()):
                value = slot.resolve()
                if value is None:
                    continue
                self._store(table, key, self._watch(key, func(value)))

    # -- construction helpers ----------------------------------------------

    def empty(self) -> "WeakValueDict[K, V]":
        return type(self)(
            value_type=self.value_type, notifier=self._notifier.spawn()
        )

    def copy(self) -> "WeakValueDict[K, V]":
        with self._locked() as table:
            pairs = [(key, slot.resolve()) for key, slot in table.items()]
        clone = self.empty()
        for key, value in pairs:
            if value is not None:
                clone[key] = value
        return clone

    __copy__ = copy

    def __repr__(self) -> str:
        return f"<{type(self).__name__} at {hex(id(self))}; {len(self)} slots>"
