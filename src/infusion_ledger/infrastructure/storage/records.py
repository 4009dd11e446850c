"""
Typed load/save of JSON collections through a session.

Loading never raises: absent keys, unreadable stores and values that fail
validation all degrade to a default, and the returned ``LoadResult`` says
which of those happened.
"""

import logging
from collections.abc import Callable
from typing import TypeVar

from pydantic import TypeAdapter, ValidationError

from infusion_ledger.domain.results import LoadResult, LoadStatus
from infusion_ledger.infrastructure.storage.session import LedgerSession
from infusion_ledger.utils.exceptions import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def load_records(
    session: LedgerSession,
    name: str,
    adapter: TypeAdapter[T],
    default_factory: Callable[[], T],
) -> LoadResult[T]:
    """
    Load and validate the value stored under a session name.

    Args:
        session: User-scoped storage.
        name: Logical key name (e.g. "products").
        adapter: Pydantic adapter describing the stored shape.
        default_factory: Produces the fallback value.

    Returns:
        The loaded value, or the default with the reason it was used.
    """
    try:
        raw = session.read(name)
    except StorageError as e:
        logger.error(f"Failed to read {name} for user {session.user}: {e}")
        return LoadResult(default_factory(), LoadStatus.DEFAULTED_CORRUPT, str(e))

    if raw is None:
        return LoadResult(default_factory(), LoadStatus.DEFAULTED_ABSENT)

    try:
        value = adapter.validate_json(raw)
    except ValidationError as e:
        logger.warning(
            f"Stored {name} for user {session.user} is invalid "
            f"({e.error_count()} errors), using defaults"
        )
        return LoadResult(default_factory(), LoadStatus.DEFAULTED_CORRUPT, str(e))

    return LoadResult(value, LoadStatus.LOADED)


def save_records(session: LedgerSession, name: str, adapter: TypeAdapter[T], value: T) -> bool:
    """
    Serialize a value with camelCase keys and store it under a session name.

    Returns:
        True if the value was written, False if the store failed (logged).
    """
    try:
        raw = adapter.dump_json(value, by_alias=True).decode("utf-8")
        session.write(name, raw)
    except StorageError as e:
        logger.error(f"Failed to save {name} for user {session.user}: {e}")
        return False

    logger.debug(f"Saved {name} for user {session.user}")
    return True
