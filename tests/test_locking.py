from __future__ import annotations

import threading

import pytest

from weakvaluedicts import ExclusionLock


def test_lock_is_reentrant_and_tracks_depth() -> None:
    lock = ExclusionLock()
    assert not lock.locked()
    with lock:
        assert lock.locked()
        with lock:
            assert lock.locked()
        assert lock.locked()
    assert not lock.locked()


def test_try_acquire_refuses_while_held_by_same_thread() -> None:
    lock = ExclusionLock()
    with lock:
        assert lock.try_acquire() is False
    assert lock.try_acquire() is True
    lock.release()
    assert not lock.locked()


def test_try_acquire_refuses_while_held_by_other_thread() -> None:
    lock = ExclusionLock()
    holding = threading.Event()
    release = threading.Event()

    def hold() -> None:
        with lock:
            holding.set()
            release.wait(5)

    worker = threading.Thread(target=hold)
    worker.start()
    try:
        assert holding.wait(5)
        assert lock.locked()
        assert lock.try_acquire() is False
        assert lock.acquire(blocking=False) is False
    finally:
        release.set()
        worker.join(5)
    assert not lock.locked()


def test_run_releases_on_error() -> None:
    lock = ExclusionLock()
    assert lock.run(lambda: 7) == 7

    def boom() -> None:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        lock.run(boom)
    assert not lock.locked()
    assert lock.try_acquire()
    lock.release()


def test_repr_reports_state() -> None:
    lock = ExclusionLock()
    assert "unlocked" in repr(lock)
    with lock:
        assert "; locked" in repr(lock)


def test_release_without_hold_leaves_depth_intact() -> None:
    lock = ExclusionLock()
    with pytest.raises(RuntimeError):
        lock.release()
    assert not lock.locked()
    assert lock.try_acquire() is True
    lock.release()
    assert not lock.locked()


def test_release_from_other_thread_keeps_owner_hold() -> None:
    lock = ExclusionLock()
    errors: list[BaseException] = []

    def foreign_release() -> None:
        try:
            lock.release()
        except BaseException as exc:  # noqa: BLE001
            errors.append(exc)

    with lock:
        worker = threading.Thread(target=foreign_release)
        worker.start()
        worker.join(5)
        assert len(errors) == 1
        assert isinstance(errors[0], RuntimeError)
        assert lock.locked()
        assert lock.try_acquire() is False
    assert not lock.locked()
    assert lock.try_acquire() is True
    lock.release()
