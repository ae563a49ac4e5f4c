"""Weak handles and the deferred reclamation queue behind them."""

from __future__ import annotations

import logging
import threading
import weakref
from collections import deque
from typing import Callable

from weakvaluedicts import config

logger = logging.getLogger(__name__)

Hook = Callable[["WeakHandle"], None]
Deferred = Callable[[], None]


class WeakHandle(weakref.ref):
    """Weak reference that reports whether its referent is still alive."""

    __slots__ = ()

    def resolve(self) -> object | None:
        return self()

    @property
    def alive(self) -> bool:
        return self() is not None

    def __repr__(self) -> str:
        obj = self()
        if obj is None:
            return f"<WeakHandle at {hex(id(self))}; dead>"
        return f"<WeakHandle at {hex(id(self))}; to '{type(obj).__name__}'>"


class ReclaimNotifier:
    """Registers reclamation hooks and holds the ones that had to back off.

    ``watch`` arms a hook that the interpreter calls, on whatever thread drops
    the last strong reference, once the value is reclaimed. A hook that cannot
    make progress re-submits itself with ``defer``; ``flush`` runs each queued
    callback at most once per call, so a callback that defers again waits for
    the next drain instead of spinning.
    """

    def __init__(
        self,
        *,
        reap_interval: float | None = None,
        flush_on_release: bool | None = None,
    ) -> None:
        current = config.settings()
        if reap_interval is None:
            reap_interval = current.reap_interval
        reap_interval = max(0.0, reap_interval)
        if flush_on_release is None:
            # Without a reaper, draining on release is the only retry path.
            flush_on_release = current.flush_on_release or reap_interval == 0
        elif not flush_on_release and reap_interval == 0:
            raise ValueError("flush_on_release=False requires a reap_interval > 0")
        self.reap_interval = reap_interval
        self.flush_on_release = flush_on_release
        self._deferred: deque[Deferred] = deque()
        if self.reap_interval > 0:
            shared_reaper(self.reap_interval).register(self)

    def watch(self, value: object, hook: Hook) -> WeakHandle:
        return WeakHandle(value, hook)

    def defer(self, callback: Deferred) -> None:
        self._deferred.append(callback)

    def pending(self) -> int:
        return len(self._deferred)

    def flush(self) -> int:
        ran = 0
        for _ in range(len(self._deferred)):
            try:
                callback = self._deferred.popleft()
            except IndexError:
                break
            try:
                callback()
            except Exception:
                logger.exception("deferred reclamation hook failed")
            ran += 1
        return ran

    def spawn(self) -> "ReclaimNotifier":
        """Return a fresh notifier with the same settings and an empty queue."""
        return type(self)(
            reap_interval=self.reap_interval,
            flush_on_release=self.flush_on_release,
        )

    def __repr__(self) -> str:
        return f"<ReclaimNotifier at {hex(id(self))}; pending={self.pending()}>"


class Reaper:
    """Daemon thread that drains registered notifiers on a fixed interval."""

    def __init__(self, interval: float) -> None:
        if interval <= 0:
            raise ValueError("reaper interval must be positive")
        self.interval = interval
        self._lock = threading.Lock()
        self._notifiers: weakref.WeakSet[ReclaimNotifier] = weakref.WeakSet()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def register(self, notifier: ReclaimNotifier) -> None:
        with self._lock:
            self._notifiers.add(notifier)
            self._ensure_thread()

    def _ensure_thread(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="weakvaluedicts-reaper", daemon=True
        )
        self._thread.start()
        logger.debug("reaper started (interval=%ss)", self.interval)

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            self.run_once()

    def run_once(self) -> int:
        with self._lock:
            notifiers = list(self._notifiers)
        return sum(notifier.flush() for notifier in notifiers)

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is not None:
            thread.join(timeout)
            logger.debug("reaper stopped (interval=%ss)", self.interval)


_REAPERS: dict[float, Reaper] = {}
_REAPERS_LOCK = threading.Lock()


def shared_reaper(interval: float) -> Reaper:
    with _REAPERS_LOCK:
        reaper = _REAPERS.get(interval)
        if reaper is None:
            reaper = Reaper(interval)
            _REAPERS[interval] = reaper
        return reaper


def stop_reapers(timeout: float | None = None) -> None:
    with _REAPERS_LOCK:
        reapers = list(_REAPERS.values())
        _REAPERS.clear()
    for reaper in reapers:
        reaper.stop(timeout)
