"""Unit tests for the therapy ledger."""

import json
from datetime import date, datetime
from pathlib import Path

import pytz

from infusion_ledger.domain.results import LoadStatus
from infusion_ledger.domain.therapy import ProductCategory, TherapyType
from infusion_ledger.infrastructure.storage.json_file import JsonFileStore
from infusion_ledger.infrastructure.storage.memory import MemoryStore
from infusion_ledger.infrastructure.storage.session import LedgerSession
from infusion_ledger.services.ledger import TherapyLedger
from infusion_ledger.utils.exceptions import StorageError
from infusion_ledger.utils.timezone_utils import FixedClock


def _make_ledger(
    when: datetime = datetime(2024, 3, 15, 9, 30), store: MemoryStore | None = None
) -> tuple[TherapyLedger, FixedClock, MemoryStore]:
    store = store if store is not None else MemoryStore()
    clock = FixedClock(when, "Europe/Rome")
    session = LedgerSession(store, "patient@example.com", clock=clock)
    return TherapyLedger(session), clock, store


def _stock(ledger: TherapyLedger) -> dict[str, int]:
    return {p.id: p.stock for p in ledger.get_products()}


def test_first_access_seeds_defaults() -> None:
    """Test that the default inventory is seeded and persisted on first access."""
    ledger, _, store = _make_ledger()

    result = ledger.load_products()

    if result.status != LoadStatus.DEFAULTED_ABSENT:
        raise AssertionError(f"Expected DEFAULTED_ABSENT, got {result.status}")

    if _stock(ledger) != {"syringe": 10, "cannula": 15, "adapter": 20}:
        raise AssertionError(f"Unexpected seed stock: {_stock(ledger)}")

    thresholds = {p.id: p.min_threshold for p in ledger.get_products()}
    if thresholds != {"syringe": 5, "cannula": 8, "adapter": 10}:
        raise AssertionError(f"Unexpected seed thresholds: {thresholds}")

    if store.get("infusion_ledger_patient@example.com_products") is None:
        raise AssertionError("Expected seeded products to be persisted")

    if ledger.load_products().status != LoadStatus.LOADED:
        raise AssertionError("Expected second load to come from storage")


def test_adjust_stock_clamps_at_zero() -> None:
    """Test that stock never goes below zero."""
    ledger, _, _ = _make_ledger()

    ledger.adjust_stock("syringe", -25)
    if _stock(ledger)["syringe"] != 0:
        raise AssertionError(f"Expected syringe stock 0, got {_stock(ledger)['syringe']}")

    ledger.adjust_stock("syringe", 4)
    if _stock(ledger)["syringe"] != 4:
        raise AssertionError(f"Expected syringe stock 4, got {_stock(ledger)['syringe']}")


def test_adjust_stock_unknown_product_is_noop() -> None:
    """Test that adjusting an unknown product changes nothing."""
    ledger, _, _ = _make_ledger()
    before = _stock(ledger)

    ledger.adjust_stock("does-not-exist", -1)

    if _stock(ledger) != before:
        raise AssertionError("Expected stock to be unchanged")


def test_update_product_merges_editable_fields() -> None:
    """Test partial product updates."""
    ledger, _, _ = _make_ledger()

    ledger.update_product("cannula", {"name": "Cannula 30G", "minThreshold": 2, "stock": 99})

    cannula = next(p for p in ledger.get_products() if p.id == "cannula")
    if cannula.name != "Cannula 30G":
        raise AssertionError(f"Expected new name, got {cannula.name}")
    if cannula.min_threshold != 2:
        raise AssertionError(f"Expected min_threshold 2, got {cannula.min_threshold}")
    if cannula.stock != 15:
        raise AssertionError(f"Stock is not editable, expected 15, got {cannula.stock}")
    if cannula.code != "CAN001":
        raise AssertionError(f"Expected code to be kept, got {cannula.code}")


def test_update_product_rejects_invalid_values() -> None:
    """Test that an invalid merge leaves the product unchanged."""
    ledger, _, _ = _make_ledger()

    ledger.update_product("adapter", {"min_threshold": -3})
    ledger.update_product("missing", {"name": "x"})

    adapter = next(p for p in ledger.get_products() if p.id == "adapter")
    if adapter.min_threshold != 10:
        raise AssertionError(f"Expected min_threshold 10, got {adapter.min_threshold}")
    if len(ledger.get_products()) != 3:
        raise AssertionError("Expected no product to be added")


def test_low_stock_products() -> None:
    """Test that low stock means stock at or below the threshold."""
    ledger, _, _ = _make_ledger()

    if ledger.get_low_stock_products():
        raise AssertionError("Expected no low-stock products after seeding")

    ledger.adjust_stock("syringe", -5)
    ledger.adjust_stock("adapter", -9)

    low = {p.id for p in ledger.get_low_stock_products()}
    if low != {"syringe"}:
        raise AssertionError(f"Expected only syringe to be low, got {low}")

    ledger.adjust_stock("adapter", -1)
    low = {p.id for p in ledger.get_low_stock_products()}
    if low != {"syringe", "adapter"}:
        raise AssertionError(f"Expected syringe and adapter to be low, got {low}")


def test_log_base_dose_scenario() -> None:
    """Test a base dose from the default seed, then a second dose the same day."""
    ledger, _, _ = _make_ledger()

    outcome = ledger.log_dose("base")

    if not outcome.logged:
        raise AssertionError("Expected the first dose to be logged")

    if _stock(ledger) != {"syringe": 9, "cannula": 15, "adapter": 19}:
        raise AssertionError(f"Unexpected stock after base dose: {_stock(ledger)}")

    if ledger.get_today_type() != TherapyType.BASE:
        raise AssertionError(f"Expected today's type base, got {ledger.get_today_type()}")

    if ledger.can_log_today():
        raise AssertionError("Expected no further dose allowed today")

    second = ledger.log_dose(TherapyType.BASE_ACCESSORY)

    if second.logged:
        raise AssertionError("Expected the second dose of the day to be ignored")

    if _stock(ledger) != {"syringe": 9, "cannula": 15, "adapter": 19}:
        raise AssertionError(f"Stock changed after ignored dose: {_stock(ledger)}")

    if len(ledger.get_events()) != 1:
        raise AssertionError(f"Expected 1 event, got {len(ledger.get_events())}")

    if ledger.get_today_type() != "base":
        raise AssertionError("Expected today's type to stay base")


def test_log_base_accessory_dose() -> None:
    """Test that a base+accessory dose uses one of each consumable."""
    ledger, _, _ = _make_ledger()

    outcome = ledger.log_dose(TherapyType.BASE_ACCESSORY)

    if _stock(ledger) != {"syringe": 9, "cannula": 14, "adapter": 19}:
        raise AssertionError(f"Unexpected stock: {_stock(ledger)}")

    expected = {
        ProductCategory.PRIMARY: 1,
        ProductCategory.SECONDARY: 1,
        ProductCategory.ACCESSORY: 1,
    }
    if outcome.decremented != expected:
        raise AssertionError(f"Unexpected decrements: {outcome.decremented}")

    event = outcome.event
    if event is None or event.day != date(2024, 3, 15):
        raise AssertionError(f"Expected event on 2024-03-15, got {event}")


def test_one_event_per_day_across_many_calls() -> None:
    """Test that repeated calls on one day create a single event."""
    ledger, clock, _ = _make_ledger()

    for hour in (8, 12, 18, 23):
        clock.set(datetime(2024, 3, 15, hour, 0))
        ledger.log_dose("base")

    if len(ledger.get_events()) != 1:
        raise AssertionError(f"Expected 1 event, got {len(ledger.get_events())}")

    clock.set(datetime(2024, 3, 16, 0, 5))
    if not ledger.can_log_today():
        raise AssertionError("Expected a new day to allow a dose")
    if ledger.get_today_type() is not None:
        raise AssertionError("Expected no dose on the new day yet")


def test_unknown_dose_type_is_noop() -> None:
    """Test that an unknown dose type logs nothing."""
    ledger, _, _ = _make_ledger()

    outcome = ledger.log_dose("double")

    if outcome.logged:
        raise AssertionError("Expected unknown type to be ignored")
    if ledger.get_events():
        raise AssertionError("Expected no events")
    if not ledger.can_log_today():
        raise AssertionError("Expected today to still be open")


def test_report_counts_dose_when_stock_is_empty() -> None:
    """Test that the usage report counts a dose even when stock is exhausted."""
    ledger, _, _ = _make_ledger()
    ledger.adjust_stock("syringe", -10)

    outcome = ledger.log_dose("base")

    if outcome.skipped != [ProductCategory.PRIMARY]:
        raise AssertionError(f"Expected primary to be skipped, got {outcome.skipped}")
    if not outcome.diverged:
        raise AssertionError("Expected the outcome to report a divergence")
    if _stock(ledger)["syringe"] != 0:
        raise AssertionError("Expected syringe stock to stay at 0")
    if _stock(ledger)["adapter"] != 19:
        raise AssertionError("Expected adapter stock to be decremented")

    report = ledger.get_usage_reports()[0]
    if report.count(ProductCategory.PRIMARY) != 1:
        raise AssertionError(f"Expected primary count 1, got {report.primary}")
    if report.accessory != 1 or report.secondary != 0:
        raise AssertionError(f"Unexpected report counts: {report}")


def test_monthly_reports_are_independent() -> None:
    """Test that doses in two months land in two separate reports."""
    ledger, clock, _ = _make_ledger(datetime(2024, 1, 30, 9, 0))

    ledger.log_dose("base")
    clock.set(datetime(2024, 1, 31, 9, 0))
    ledger.log_dose("base+accessory")
    clock.set(datetime(2024, 2, 1, 9, 0))
    ledger.log_dose("base")

    reports = {r.month: r for r in ledger.get_usage_reports()}

    if set(reports) != {"2024-01", "2024-02"}:
        raise AssertionError(f"Expected reports for Jan and Feb, got {sorted(reports)}")

    january = reports["2024-01"]
    if (january.primary, january.secondary, january.accessory) != (2, 1, 2):
        raise AssertionError(f"Unexpected January counts: {january}")
    if january.year != 2024:
        raise AssertionError(f"Expected year 2024, got {january.year}")

    february = reports["2024-02"]
    if (february.primary, february.secondary, february.accessory) != (1, 0, 1):
        raise AssertionError(f"Unexpected February counts: {february}")


def test_day_follows_clock_timezone() -> None:
    """Test that the calendar day is taken in the clock's local zone."""
    store = MemoryStore()
    clock = FixedClock(datetime(2024, 3, 15, 23, 30, tzinfo=pytz.utc), "Europe/Rome")
    ledger = TherapyLedger(LedgerSession(store, "u", clock=clock))

    outcome = ledger.log_dose("base")

    if outcome.event is None or outcome.event.day != date(2024, 3, 16):
        raise AssertionError(f"Expected local day 2024-03-16, got {outcome.event}")


def test_delete_event_does_not_reverse_side_effects() -> None:
    """Test that deleting a dose keeps stock and usage counts."""
    ledger, _, _ = _make_ledger()
    ledger.log_dose("base+accessory")

    removed = ledger.delete_event("2024-03-15")

    if removed != 1:
        raise AssertionError(f"Expected 1 removed event, got {removed}")
    if ledger.get_events():
        raise AssertionError("Expected no events after delete")
    if _stock(ledger) != {"syringe": 9, "cannula": 14, "adapter": 19}:
        raise AssertionError(f"Stock must not be restored: {_stock(ledger)}")

    report = ledger.get_usage_reports()[0]
    if (report.primary, report.secondary, report.accessory) != (1, 1, 1):
        raise AssertionError(f"Report must not be decremented: {report}")

    if not ledger.can_log_today():
        raise AssertionError("Expected the day to be open again after delete")

    ledger.log_dose("base")
    if _stock(ledger) != {"syringe": 8, "cannula": 14, "adapter": 18}:
        raise AssertionError(f"Unexpected stock after re-logging: {_stock(ledger)}")


def test_delete_event_without_match() -> None:
    """Test deleting a day with no dose and an invalid date."""
    ledger, _, _ = _make_ledger()
    ledger.log_dose("base")

    if ledger.delete_event(date(2024, 3, 14)) != 0:
        raise AssertionError("Expected nothing removed for another day")
    if ledger.delete_event("15/03/2024") != 0:
        raise AssertionError("Expected nothing removed for an invalid date")
    if len(ledger.get_events()) != 1:
        raise AssertionError("Expected the event to be kept")


def test_corrupt_products_fall_back_to_defaults() -> None:
    """Test that unreadable product data degrades to the seed."""
    store = MemoryStore({"infusion_ledger_patient@example.com_products": "{not json"})
    ledger, _, _ = _make_ledger(store=store)

    result = ledger.load_products()

    if result.status != LoadStatus.DEFAULTED_CORRUPT:
        raise AssertionError(f"Expected DEFAULTED_CORRUPT, got {result.status}")
    if len(result.value) != 3:
        raise AssertionError(f"Expected 3 default products, got {len(result.value)}")
    if result.error is None:
        raise AssertionError("Expected the error to be recorded")


def test_corrupt_events_and_reports_fall_back_to_empty() -> None:
    """Test that invalid events and reports degrade to empty lists."""
    store = MemoryStore(
        {
            "infusion_ledger_patient@example.com_therapy": '[{"id": "1", "date": "nope"}]',
            "infusion_ledger_patient@example.com_usage_reports": '{"month": "2024-01"}',
        }
    )
    ledger, _, _ = _make_ledger(store=store)

    events = ledger.load_events()
    if events.status != LoadStatus.DEFAULTED_CORRUPT or events.value != []:
        raise AssertionError(f"Unexpected events result: {events}")

    reports = ledger.load_usage_reports()
    if reports.status != LoadStatus.DEFAULTED_CORRUPT or reports.value != []:
        raise AssertionError(f"Unexpected reports result: {reports}")

    if not ledger.can_log_today():
        raise AssertionError("Expected corrupt events to allow logging")


def test_absent_events_are_reported_as_absent() -> None:
    """Test the status of collections never written."""
    ledger, _, _ = _make_ledger()

    if ledger.load_events().status != LoadStatus.DEFAULTED_ABSENT:
        raise AssertionError("Expected absent events")
    if ledger.load_usage_reports().status != LoadStatus.DEFAULTED_ABSENT:
        raise AssertionError("Expected absent reports")


def test_collections_round_trip_through_storage() -> None:
    """Test that reloading persisted collections yields identical data."""
    ledger, clock, store = _make_ledger()
    ledger.log_dose("base")
    clock.set(datetime(2024, 4, 2, 7, 45))
    ledger.log_dose("base+accessory")
    ledger.update_product("adapter", {"code": "ADA-77"})

    reloaded = TherapyLedger(LedgerSession(store, "patient@example.com", clock=clock))

    if reloaded.get_products() != ledger.get_products():
        raise AssertionError("Products differ after reload")
    if reloaded.get_events() != ledger.get_events():
        raise AssertionError("Events differ after reload")
    if reloaded.get_usage_reports() != ledger.get_usage_reports():
        raise AssertionError("Reports differ after reload")
    if reloaded.load_events().status != LoadStatus.LOADED:
        raise AssertionError("Expected events to be loaded from storage")


def test_persisted_events_use_wire_names() -> None:
    """Test the stored JSON shape of events and products."""
    ledger, _, store = _make_ledger()
    ledger.log_dose("base")

    events = json.loads(store.get("infusion_ledger_patient@example.com_therapy"))
    if set(events[0]) != {"id", "date", "type", "timestamp"}:
        raise AssertionError(f"Unexpected event keys: {sorted(events[0])}")
    if events[0]["date"] != "2024-03-15" or events[0]["type"] != "base":
        raise AssertionError(f"Unexpected event values: {events[0]}")

    products = json.loads(store.get("infusion_ledger_patient@example.com_products"))
    if "minThreshold" not in products[0]:
        raise AssertionError(f"Expected camelCase keys, got {sorted(products[0])}")


def test_users_do_not_share_data() -> None:
    """Test that two sessions on one store are isolated."""
    store = MemoryStore()
    clock = FixedClock(datetime(2024, 3, 15, 9, 0), "Europe/Rome")
    alice = TherapyLedger(LedgerSession(store, "alice", clock=clock))
    bob = TherapyLedger(LedgerSession(store, "bob", clock=clock))

    alice.log_dose("base")

    if not bob.can_log_today():
        raise AssertionError("Expected bob's day to be open")
    if _stock(bob)["syringe"] != 10:
        raise AssertionError("Expected bob's stock to be untouched")


class _TherapyWriteFailingStore(MemoryStore):
    """Memory store whose writes of the therapy collection always fail."""

    def set(self, key: str, value: str) -> None:
        if key.endswith("_therapy"):
            raise StorageError(f"Disk full while writing {key}")
        super().set(key, value)


def test_unsaved_dose_leaves_stock_and_reports_unchanged() -> None:
    """Test that a dose whose event cannot be stored has no side effects."""
    ledger, _, _ = _make_ledger(store=_TherapyWriteFailingStore())

    first = ledger.log_dose("base")
    second = ledger.log_dose("base")

    if first.logged or second.logged:
        raise AssertionError("Expected no dose to be logged when the event is not saved")
    if _stock(ledger) != {"syringe": 10, "cannula": 15, "adapter": 20}:
        raise AssertionError(f"Expected untouched stock, got {_stock(ledger)}")
    if ledger.get_usage_reports():
        raise AssertionError(f"Expected no usage reports, got {ledger.get_usage_reports()}")
    if not ledger.can_log_today():
        raise AssertionError("Expected today to remain open")


def test_undecodable_store_file_falls_back_to_defaults(tmp_path: Path) -> None:
    """Test that a store file with invalid UTF-8 degrades to the seed."""
    path = tmp_path / "ledger.json"
    path.write_bytes(b'{"infusion_ledger_patient@example.com_products": "\xff\xfe"}')
    clock = FixedClock(datetime(2024, 3, 15, 9, 30), "Europe/Rome")
    ledger = TherapyLedger(LedgerSession(JsonFileStore(path), "patient@example.com", clock=clock))

    result = ledger.load_products()

    if result.status != LoadStatus.DEFAULTED_CORRUPT:
        raise AssertionError(f"Expected DEFAULTED_CORRUPT, got {result.status}")
    if len(ledger.get_products()) != 3:
        raise AssertionError("Expected the default products")


def test_products_without_category_are_loaded() -> None:
    """Test that products stored as {id, name, code, stock, minThreshold} keep their stock."""
    stored = [
        {"id": "syringe", "name": "Syringe 20ml", "code": "SIR001", "stock": 42, "minThreshold": 5},
        {"id": "cannula", "name": "Cannula 27G", "code": "CAN001", "stock": 42, "minThreshold": 8},
        {"id": "adapter", "name": "Luer adapter", "code": "ADA001", "stock": 42, "minThreshold": 10},
    ]
    store = MemoryStore({"infusion_ledger_patient@example.com_products": json.dumps(stored)})
    ledger, _, _ = _make_ledger(store=store)

    result = ledger.load_products()

    if result.status != LoadStatus.LOADED:
        raise AssertionError(f"Expected LOADED, got {result.status} ({result.error})")
    categories = {p.id: p.category for p in result.value}
    expected = {
        "syringe": ProductCategory.PRIMARY,
        "cannula": ProductCategory.SECONDARY,
        "adapter": ProductCategory.ACCESSORY,
    }
    if categories != expected:
        raise AssertionError(f"Unexpected categories: {categories}")

    ledger.adjust_stock("syringe", 1)
    if _stock(ledger) != {"syringe": 43, "cannula": 42, "adapter": 42}:
        raise AssertionError(f"Unexpected stock after adjust: {_stock(ledger)}")

    ledger.log_dose("base")
    if _stock(ledger) != {"syringe": 42, "cannula": 42, "adapter": 41}:
        raise AssertionError(f"Unexpected stock after dose: {_stock(ledger)}")
