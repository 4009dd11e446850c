"""
Export, import and removal of a user's data.

Devices keep their own copy of the data; moving it between devices is done
with an explicit export/import of the whole bundle.
"""

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from infusion_ledger.domain.therapy import (
    NotificationSettings,
    Product,
    ProductCategory,
    TherapyEvent,
    UsageReport,
)
from infusion_ledger.services.ledger import TherapyLedger
from infusion_ledger.services.notifications import NotificationSettingsService
from infusion_ledger.utils.exceptions import TransferError

logger = logging.getLogger(__name__)


class UserDataBundle(BaseModel):
    """Everything stored for one user."""

    user: str
    products: list[Product] = Field(default_factory=list)
    therapy: list[TherapyEvent] = Field(default_factory=list)
    usage_reports: list[UsageReport] = Field(default_factory=list)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    last_sync: str | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TransferService:
    """Moves a user's data in and out of the ledger's store."""

    def __init__(self, ledger: TherapyLedger, notifications: NotificationSettingsService) -> None:
        """
        Initialize transfer service.

        Args:
            ledger: Ledger whose session is exported or imported.
            notifications: Reminder settings of the same session.
        """
        self.ledger = ledger
        self.notifications = notifications
        self.session = ledger.session

    def export_bundle(self) -> UserDataBundle:
        """
        Collect the current user's data.

        Raises:
            StorageError: If the last-sync stamp cannot be read.
        """
        return UserDataBundle(
            user=self.session.user,
            products=self.ledger.get_products(),
            therapy=self.ledger.get_events(),
            usage_reports=self.ledger.get_usage_reports(),
            notifications=self.notifications.get(),
            last_sync=self.session.last_sync(),
        )

    def write_export(self, path: Path) -> UserDataBundle:
        """
        Export the current user's data to a JSON file.

        Raises:
            TransferError: If the file cannot be written.
        """
        bundle = self.export_bundle()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(bundle.model_dump_json(by_alias=True, indent=2))
        except OSError as e:
            raise TransferError(f"Failed to write export {path}: {e}") from e

        logger.info(
            f"Exported {len(bundle.products)} products, {len(bundle.therapy)} events "
            f"and {len(bundle.usage_reports)} reports to {path}"
        )
        return bundle

    @staticmethod
    def read_export(path: Path) -> UserDataBundle:
        """
        Read a bundle written by ``write_export``.

        Raises:
            TransferError: If the file is missing, unreadable or malformed.
        """
        try:
            with open(path, encoding="utf-8") as f:
                raw = f.read()
            return UserDataBundle.model_validate_json(raw)
        except OSError as e:
            raise TransferError(f"Failed to read export {path}: {e}") from e
        except ValidationError as e:
            raise TransferError(f"Invalid export file {path}: {e}") from e

    def import_bundle(self, bundle: UserDataBundle) -> None:
        """
        Replace the current user's data with a bundle.

        The bundle's own user name is informational; data always lands in
        this service's session.

        Raises:
            TransferError: If the bundle breaks a ledger invariant or a
                collection cannot be saved.
        """
        _check_bundle(bundle)

        saved = [
            self.ledger.save_products(bundle.products),
            self.ledger.save_events(bundle.therapy),
            self.ledger.save_usage_reports(bundle.usage_reports),
            self.notifications.save(bundle.notifications),
        ]
        if not all(saved):
            raise TransferError(f"Import for user {self.session.user} was only partially saved")

        logger.info(f"Imported data of {bundle.user} into user {self.session.user}")

    def clear_user_data(self) -> None:
        """
        Remove every stored key of the current user.

        Raises:
            StorageError: If the store fails.
        """
        self.session.clear()


def _check_bundle(bundle: UserDataBundle) -> None:
    days = [event.day for event in bundle.therapy]
    if len(days) != len(set(days)):
        raise TransferError("Export contains more than one event on the same day")

    categories = [ProductCategory(p.category) for p in bundle.products]
    duplicated = {c.value for c in categories if categories.count(c) > 1}
    if duplicated:
        raise TransferError(f"Export contains several products for {sorted(duplicated)}")

    missing = set(ProductCategory) - set(categories)
    if bundle.products and missing:
        logger.warning(f"Imported inventory has no product for {sorted(c.value for c in missing)}")

    months = [report.month for report in bundle.usage_reports]
    if len(months) != len(set(months)):
        raise TransferError("Export contains more than one usage report for the same month")
