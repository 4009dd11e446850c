"""
Therapy ledger: dose log, consumable stock and monthly usage.

Logging a dose records at most one event per calendar day, takes the
consumables of that dose type out of stock and adds them to the month's
usage report. Every operation is a synchronous read-modify-write of the
user's stored collections and none of them raises: storage problems fall
back to defaults and logical violations are no-ops.

Two behaviours are kept on purpose and are visible to callers:

* Stock is only decremented while a product is above zero, but the usage
  report always counts the full dose. ``DoseOutcome.skipped`` names the
  categories where the two disagree.
* Deleting an event neither restores stock nor lowers the usage report.
"""

import logging
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError

from infusion_ledger.domain.results import DoseOutcome, LoadResult, LoadStatus
from infusion_ledger.domain.therapy import (
    ConsumptionVector,
    Product,
    ProductCategory,
    TherapyEvent,
    TherapyType,
    UsageReport,
    consumption_for,
    default_products,
)
from infusion_ledger.infrastructure.storage.records import load_records, save_records
from infusion_ledger.infrastructure.storage.session import (
    PRODUCTS_KEY,
    THERAPY_KEY,
    USAGE_REPORTS_KEY,
    LedgerSession,
)
from infusion_ledger.utils.timezone_utils import Clock, epoch_millis, local_today, month_key

logger = logging.getLogger(__name__)

_PRODUCTS = TypeAdapter(list[Product])
_EVENTS = TypeAdapter(list[TherapyEvent])
_REPORTS = TypeAdapter(list[UsageReport])

# Accepted keys of update_product, mapped to model fields
EDITABLE_PRODUCT_FIELDS = {
    "name": "name",
    "code": "code",
    "min_threshold": "min_threshold",
    "minThreshold": "min_threshold",
}


class TherapyLedger:
    """
    Bookkeeping for one user's therapy.

    The ledger holds no state of its own; every call reads the collections
    from the session and writes them back.
    """

    def __init__(self, session: LedgerSession, clock: Clock | None = None) -> None:
        """
        Initialize the ledger.

        Args:
            session: User-scoped storage.
            clock: Source of "now"; defaults to the session's clock.
        """
        self.session = session
        self.clock: Clock = clock or session.clock

    # Products

    def load_products(self) -> LoadResult[list[Product]]:
        """
        Load the inventory, seeding the default products on first access.

        An empty stored list counts as absent. Corrupt data is replaced by the
        defaults in the returned value only; it is overwritten the next time
        the inventory is saved.
        """
        result = load_records(self.session, PRODUCTS_KEY, _PRODUCTS, default_products)

        if result.status is LoadStatus.LOADED and not result.value:
            result = LoadResult(default_products(), LoadStatus.DEFAULTED_ABSENT)

        if result.status is LoadStatus.DEFAULTED_ABSENT:
            logger.info(f"Seeding default products for user {self.session.user}")
            self.save_products(result.value)

        return result

    def get_products(self) -> list[Product]:
        return self.load_products().value

    def save_products(self, products: list[Product]) -> bool:
        return save_records(self.session, PRODUCTS_KEY, _PRODUCTS, products)

    def adjust_stock(self, product_id: str, delta: int) -> None:
        """
        Change a product's stock by ``delta``, never going below zero.

        Unknown product ids are logged and ignored.
        """
        products = self.get_products()
        product = next((p for p in products if p.id == product_id), None)
        if product is None:
            logger.warning(f"Cannot adjust stock of unknown product {product_id!r}")
            return

        new_stock = product.stock + delta
        if new_stock < 0:
            logger.info(f"Stock of {product_id} clamped at 0 (would be {new_stock})")
            new_stock = 0

        product.stock = new_stock
        self.save_products(products)
        logger.debug(f"Stock of {product_id} is now {new_stock}")

    def update_product(self, product_id: str, updates: Mapping[str, Any]) -> None:
        """
        Merge editable fields (name, code, minimum threshold) into a product.

        Non-editable keys are ignored; an unknown product id or a merge that
        fails validation leaves the inventory unchanged.
        """
        products = self.get_products()
        index = next((i for i, p in enumerate(products) if p.id == product_id), None)
        if index is None:
            logger.warning(f"Cannot update unknown product {product_id!r}")
            return

        changes: dict[str, Any] = {}
        for key, value in updates.items():
            field_name = EDITABLE_PRODUCT_FIELDS.get(key)
            if field_name is None:
                logger.warning(f"Ignoring non-editable product field {key!r}")
                continue
            changes[field_name] = value

        if not changes:
            return

        try:
            products[index] = Product.model_validate({**products[index].model_dump(), **changes})
        except ValidationError as e:
            logger.warning(f"Rejected update of product {product_id!r}: {e.error_count()} errors")
            return

        self.save_products(products)
        logger.info(f"Updated product {product_id}: {sorted(changes)}")

    def get_low_stock_products(self) -> list[Product]:
        """Products at or below their reorder threshold."""
        return [p for p in self.get_products() if p.is_low_stock]

    # Therapy events

    def load_events(self) -> LoadResult[list[TherapyEvent]]:
        return load_records(self.session, THERAPY_KEY, _EVENTS, list)

    def get_events(self) -> list[TherapyEvent]:
        return self.load_events().value

    def save_events(self, events: list[TherapyEvent]) -> bool:
        return save_records(self.session, THERAPY_KEY, _EVENTS, events)

    def _today_event(self) -> TherapyEvent | None:
        today = local_today(self.clock)
        return next((e for e in self.get_events() if e.day == today), None)

    def can_log_today(self) -> bool:
        """True if no dose has been logged yet on the current calendar day."""
        return self._today_event() is None

    def get_today_type(self) -> TherapyType | None:
        event = self._today_event()
        return TherapyType(event.therapy_type) if event else None

    def log_dose(self, therapy_type: TherapyType | str) -> DoseOutcome:
        """
        Record today's dose, consume its stock and count it in the month's report.

        A second call on the same day, or an unknown dose type, changes
        nothing and returns an outcome without an event.

        Args:
            therapy_type: Dose variant taken.

        Returns:
            What was recorded and which stock could not be decremented.
        """
        try:
            therapy_type = TherapyType(therapy_type)
        except ValueError:
            logger.warning(f"Unknown therapy type {therapy_type!r}, nothing logged")
            return DoseOutcome(event=None)

        now = self.clock.now()
        today = now.date()
        events = self.get_events()

        if any(e.day == today for e in events):
            logger.info(f"A dose is already logged for {today}, ignoring {therapy_type.value}")
            return DoseOutcome(event=None)

        event = TherapyEvent(
            id=self._new_event_id(now, events),
            day=today,
            therapy_type=therapy_type,
            timestamp=epoch_millis(now),
        )
        events.append(event)
        if not self.save_events(events):
            logger.error(f"Dose for {today} was not saved, stock and reports left unchanged")
            return DoseOutcome(event=None)

        vector = consumption_for(therapy_type)
        decremented, skipped = self._consume(vector)
        self._record_usage(today, vector)

        logger.info(f"Logged {therapy_type.value} dose for {today}")
        if skipped:
            logger.warning(
                f"Counted {[c.value for c in skipped]} in usage report without stock to decrement"
            )

        return DoseOutcome(event=event, decremented=decremented, skipped=skipped)

    @staticmethod
    def _new_event_id(now: datetime, events: list[TherapyEvent]) -> str:
        existing = {e.id for e in events}
        candidate = epoch_millis(now)
        while str(candidate) in existing:
            candidate += 1
        return str(candidate)

    def _consume(
        self, vector: ConsumptionVector
    ) -> tuple[dict[ProductCategory, int], list[ProductCategory]]:
        """Take each category's quantity out of stock where stock is positive."""
        decremented: dict[ProductCategory, int] = {}
        skipped: list[ProductCategory] = []
        products = self.get_products()

        for category, quantity in vector.items():
            if quantity <= 0:
                continue

            product = next((p for p in products if p.category == category), None)
            if product is None or product.stock <= 0:
                skipped.append(category)
                continue

            self.adjust_stock(product.id, -quantity)
            decremented[category] = min(quantity, product.stock)

        return decremented, skipped

    def delete_event(self, day: date | str) -> int:
        """
        Remove the events logged on a calendar day.

        Stock and usage reports are left as they are.

        Args:
            day: The day, as a date or an ISO "YYYY-MM-DD" string.

        Returns:
            Number of events removed.
        """
        if isinstance(day, str):
            try:
                day = date.fromisoformat(day)
            except ValueError:
                logger.warning(f"Cannot delete events for invalid date {day!r}")
                return 0

        events = self.get_events()
        kept = [e for e in events if e.day != day]
        removed = len(events) - len(kept)

        if removed:
            self.save_events(kept)
            logger.info(f"Deleted {removed} event(s) on {day}; stock and reports unchanged")

        return removed

    # Usage reports

    def load_usage_reports(self) -> LoadResult[list[UsageReport]]:
        return load_records(self.session, USAGE_REPORTS_KEY, _REPORTS, list)

    def get_usage_reports(self) -> list[UsageReport]:
        """All monthly reports in storage order; callers sort by month."""
        return self.load_usage_reports().value

    def save_usage_reports(self, reports: list[UsageReport]) -> bool:
        return save_records(self.session, USAGE_REPORTS_KEY, _REPORTS, reports)

    def _record_usage(self, day: date, vector: ConsumptionVector) -> None:
        reports = self.get_usage_reports()
        key = month_key(day)

        report = next((r for r in reports if r.month == key), None)
        if report is None:
            report = UsageReport(month=key, year=day.year)
            reports.append(report)

        report.add(vector)
        self.save_usage_reports(reports)
