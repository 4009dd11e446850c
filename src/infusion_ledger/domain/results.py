"""
Result types returned by the ledger.

Reads never raise; a ``LoadResult`` records whether the value came from
storage or is a default, and why.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from infusion_ledger.domain.therapy import ProductCategory, TherapyEvent

T = TypeVar("T")


class LoadStatus(str, Enum):
    """How a persisted collection was obtained."""

    LOADED = "loaded"
    DEFAULTED_ABSENT = "defaulted_absent"
    DEFAULTED_CORRUPT = "defaulted_corrupt"


@dataclass(frozen=True)
class LoadResult(Generic[T]):
    """A value read from storage together with the path that produced it."""

    value: T
    status: LoadStatus
    error: str | None = None

    @property
    def defaulted(self) -> bool:
        return self.status is not LoadStatus.LOADED


@dataclass(frozen=True)
class DoseOutcome:
    """
    Effect of one ``log_dose`` call.

    ``decremented`` lists the stock actually taken per category; ``skipped``
    lists categories that were counted in the monthly report but whose
    stock could not be decremented (product missing or already at zero).
    """

    event: TherapyEvent | None
    decremented: dict[ProductCategory, int] = field(default_factory=dict)
    skipped: list[ProductCategory] = field(default_factory=list)

    @property
    def logged(self) -> bool:
        return self.event is not None

    @property
    def diverged(self) -> bool:
        """True when the report counted more than the stock gave up."""
        return bool(self.skipped)
