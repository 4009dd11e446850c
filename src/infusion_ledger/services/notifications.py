"""
Reminder settings storage.

Only the preferences are kept here; deciding when to remind and showing the
reminder belong to the presentation layer.
"""

import logging
from typing import Any

from pydantic import TypeAdapter

from infusion_ledger.domain.results import LoadResult
from infusion_ledger.domain.therapy import NotificationSettings
from infusion_ledger.infrastructure.storage.records import load_records, save_records
from infusion_ledger.infrastructure.storage.session import NOTIFICATIONS_KEY, LedgerSession

logger = logging.getLogger(__name__)

_SETTINGS = TypeAdapter(NotificationSettings)


class NotificationSettingsService:
    """Reads and writes the reminder preferences of one user."""

    def __init__(self, session: LedgerSession) -> None:
        self.session = session

    def load(self) -> LoadResult[NotificationSettings]:
        return load_records(self.session, NOTIFICATIONS_KEY, _SETTINGS, NotificationSettings)

    def get(self) -> NotificationSettings:
        return self.load().value

    def save(self, settings: NotificationSettings) -> bool:
        return save_records(self.session, NOTIFICATIONS_KEY, _SETTINGS, settings)

    def update(self, **changes: Any) -> NotificationSettings:
        """
        Merge changes into the stored settings and save them.

        Args:
            **changes: Field values by Python name (e.g. ``time="09:00"``).
                ``None`` values are skipped.

        Returns:
            The settings after the update.

        Raises:
            ValueError: If the merged settings are invalid.
        """
        current = self.get()
        provided = {k: v for k, v in changes.items() if v is not None}
        if not provided:
            return current

        updated = NotificationSettings.model_validate({**current.model_dump(), **provided})
        self.save(updated)
        logger.info(f"Updated reminder settings: {sorted(provided)}")
        return updated
