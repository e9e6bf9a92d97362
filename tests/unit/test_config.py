from __future__ import annotations

import pytest

from app.config import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
  get_settings.cache_clear()
  yield
  get_settings.cache_clear()


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.delenv("MARK_TRANSLATION_ENABLED", raising=False)
  monkeypatch.delenv("MARK_SCHEDULER_MAX_CONCURRENT", raising=False)
  monkeypatch.setenv("MARK_ALLOWED_ORIGINS", "http://localhost:3000, https://app.example.com")

  settings = get_settings()

  assert settings.allowed_origins == ("http://localhost:3000", "https://app.example.com")
  assert settings.translation_enabled
  assert settings.scheduler_max_concurrent == 25


def test_translation_can_be_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("MARK_TRANSLATION_ENABLED", "false")

  assert not get_settings().translation_enabled


@pytest.mark.parametrize("origins", ["*", " , "])
def test_invalid_origins_are_rejected(monkeypatch: pytest.MonkeyPatch, origins: str) -> None:
  monkeypatch.setenv("MARK_ALLOWED_ORIGINS", origins)

  with pytest.raises(ValueError, match="MARK_ALLOWED_ORIGINS"):
    get_settings()


def test_non_positive_limits_are_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("MARK_SCHEDULER_MAX_CONCURRENT", "0")

  with pytest.raises(ValueError, match="MARK_SCHEDULER_MAX_CONCURRENT"):
    get_settings()
