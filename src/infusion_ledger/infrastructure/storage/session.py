"""
Per-user view over a key-value store.

A session owns the key namespace of one user
(``{prefix}_{user}_{name}``) and stamps the last-sync time on each write.
"""

import logging

from infusion_ledger.infrastructure.storage.base import KeyValueStore
from infusion_ledger.utils.exceptions import StorageError
from infusion_ledger.utils.timezone_utils import Clock, SystemClock

logger = logging.getLogger(__name__)

PRODUCTS_KEY = "products"
THERAPY_KEY = "therapy"
USAGE_REPORTS_KEY = "usage_reports"
NOTIFICATIONS_KEY = "notifications"
LAST_SYNC_KEY = "last_sync"

USER_KEYS = (PRODUCTS_KEY, THERAPY_KEY, USAGE_REPORTS_KEY, NOTIFICATIONS_KEY, LAST_SYNC_KEY)


class LedgerSession:
    """Storage scoped to a single user."""

    def __init__(
        self,
        store: KeyValueStore,
        user: str,
        key_prefix: str = "infusion_ledger",
        clock: Clock | None = None,
    ) -> None:
        """
        Initialize the session.

        Args:
            store: Backing key-value store.
            user: Identifier of the user whose data this session reads and writes.
            key_prefix: Namespace prefix shared by all keys of the application.
            clock: Clock used to stamp the last-sync time.

        Raises:
            ValueError: If the user identifier is empty.
        """
        if not user:
            raise ValueError("A session needs a user")
        self.store = store
        self.user = user
        self.key_prefix = key_prefix
        self.clock: Clock = clock or SystemClock()

    def key(self, name: str) -> str:
        return f"{self.key_prefix}_{self.user}_{name}"

    def read(self, name: str) -> str | None:
        """
        Read the raw value stored under a name.

        Raises:
            StorageError: If the backing store fails.
        """
        return self.store.get(self.key(name))

    def write(self, name: str, value: str) -> None:
        """
        Store a raw value under a name and stamp the last-sync time.

        The stamp is best effort: a failure to write it is logged and does not
        undo or fail the data write.

        Raises:
            StorageError: If the value itself cannot be stored.
        """
        self.store.set(self.key(name), value)
        if name == LAST_SYNC_KEY:
            return

        try:
            self.store.set(self.key(LAST_SYNC_KEY), self.clock.now().isoformat())
        except StorageError as e:
            logger.warning(f"Failed to stamp last sync for user {self.user}: {e}")

    def last_sync(self) -> str | None:
        return self.read(LAST_SYNC_KEY)

    def clear(self) -> None:
        """Remove every key belonging to this user."""
        for name in USER_KEYS:
            self.store.remove(self.key(name))
        logger.info(f"Cleared stored data for user {self.user}")
