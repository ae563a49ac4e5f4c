from __future__ import annotations

import pytest

from weakvaluedicts import ReclaimNotifier, config, stop_reapers


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(config.REAP_INTERVAL_ENV, raising=False)
    monkeypatch.delenv(config.FLUSH_ON_RELEASE_ENV, raising=False)


def test_defaults() -> None:
    current = config.settings()
    assert current.reap_interval == 0.0
    assert current.flush_on_release is True


def test_settings_follow_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(config.REAP_INTERVAL_ENV, "0.25")
    monkeypatch.setenv(config.FLUSH_ON_RELEASE_ENV, "off")
    current = config.settings()
    assert current.reap_interval == 0.25
    assert current.flush_on_release is False

    monkeypatch.setenv(config.FLUSH_ON_RELEASE_ENV, "yes")
    assert config.settings().flush_on_release is True


@pytest.mark.parametrize("raw", ["", "soon", "-1", "nan"])
def test_invalid_interval_disables_reaper(
    monkeypatch: pytest.MonkeyPatch, raw: str
) -> None:
    monkeypatch.setenv(config.REAP_INTERVAL_ENV, raw)
    assert config.settings().reap_interval == 0.0


@pytest.mark.parametrize("raw", ["0", "false", "No", " OFF "])
def test_falsey_flush_flags(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv(config.FLUSH_ON_RELEASE_ENV, raw)
    assert config.settings().flush_on_release is False


def test_settings_are_cached_until_environment_changes(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    first = config.settings()
    assert config.settings() is first
    monkeypatch.setenv(config.REAP_INTERVAL_ENV, "1")
    assert config.settings() is not first


def test_notifier_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(config.FLUSH_ON_RELEASE_ENV, "0")
    assert ReclaimNotifier(flush_on_release=True).flush_on_release is True
    # With no reaper configured the flag cannot switch off the only retry path.
    assert ReclaimNotifier().flush_on_release is True

    monkeypatch.setenv(config.REAP_INTERVAL_ENV, "60")
    try:
        notifier = ReclaimNotifier()
        assert notifier.reap_interval == 60
        assert notifier.flush_on_release is False
    finally:
        stop_reapers(2)
