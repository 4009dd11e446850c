"""
Key-value persistence port.

Stores hold JSON text under opaque string keys, the way browser local
storage does. Adapters raise ``StorageError`` when the medium fails.
"""

from typing import Protocol


class KeyValueStore(Protocol):
    """Minimal get/set/remove interface the ledger persists through."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...
