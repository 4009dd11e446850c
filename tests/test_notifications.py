"""Unit tests for reminder settings storage."""

from datetime import datetime

import pytest

from infusion_ledger.domain.results import LoadStatus
from infusion_ledger.domain.therapy import DEFAULT_REMINDER_TEXT
from infusion_ledger.infrastructure.storage.memory import MemoryStore
from infusion_ledger.infrastructure.storage.session import LedgerSession
from infusion_ledger.services.notifications import NotificationSettingsService
from infusion_ledger.utils.timezone_utils import FixedClock


def _make_service(store: MemoryStore) -> NotificationSettingsService:
    clock = FixedClock(datetime(2024, 6, 3, 10, 0), "Europe/Rome")
    return NotificationSettingsService(LedgerSession(store, "u", clock=clock))


def test_defaults_when_absent() -> None:
    """Test default reminder settings."""
    result = _make_service(MemoryStore()).load()

    if result.status != LoadStatus.DEFAULTED_ABSENT:
        raise AssertionError(f"Expected DEFAULTED_ABSENT, got {result.status}")

    settings = result.value
    if not settings.enabled or settings.time != "08:15":
        raise AssertionError(f"Unexpected defaults: {settings}")
    if settings.custom_text != DEFAULT_REMINDER_TEXT:
        raise AssertionError(f"Unexpected default text: {settings.custom_text}")


def test_update_persists_changes() -> None:
    """Test that updates are merged and saved."""
    store = MemoryStore()
    service = _make_service(store)

    service.update(enabled=False, time="21:05", custom_text=None)

    reloaded = _make_service(store).load()
    if reloaded.status != LoadStatus.LOADED:
        raise AssertionError(f"Expected LOADED, got {reloaded.status}")
    if reloaded.value.enabled or reloaded.value.time != "21:05":
        raise AssertionError(f"Unexpected settings: {reloaded.value}")
    if reloaded.value.custom_text != DEFAULT_REMINDER_TEXT:
        raise AssertionError("Expected unchanged text to be kept")


def test_update_rejects_invalid_time() -> None:
    """Test that an invalid reminder time is refused."""
    store = MemoryStore()
    service = _make_service(store)

    with pytest.raises(ValueError):
        service.update(time="25:00")

    if service.load().status != LoadStatus.DEFAULTED_ABSENT:
        raise AssertionError("Expected nothing to be saved")


def test_corrupt_settings_fall_back_to_defaults() -> None:
    """Test that corrupt settings degrade to defaults."""
    store = MemoryStore({"infusion_ledger_u_notifications": '{"time": 7}'})

    result = _make_service(store).load()

    if result.status != LoadStatus.DEFAULTED_CORRUPT:
        raise AssertionError(f"Expected DEFAULTED_CORRUPT, got {result.status}")
    if result.value.time != "08:15":
        raise AssertionError("Expected default time")
