"""
Therapy domain models and consumption policy.

This module defines the persisted records of the ledger (products, therapy
events, monthly usage reports, reminder settings) and the fixed policy that
maps a dose type to the consumables it uses.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class ProductCategory(str, Enum):
    """Consumable categories; the ledger expects one product per category."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    ACCESSORY = "accessory"


class TherapyType(str, Enum):
    """Dose variants a patient can log."""

    BASE = "base"
    BASE_ACCESSORY = "base+accessory"


ConsumptionVector = dict[ProductCategory, int]

CONSUMPTION_VECTORS: dict[TherapyType, ConsumptionVector] = {
    TherapyType.BASE: {
        ProductCategory.PRIMARY: 1,
        ProductCategory.SECONDARY: 0,
        ProductCategory.ACCESSORY: 1,
    },
    TherapyType.BASE_ACCESSORY: {
        ProductCategory.PRIMARY: 1,
        ProductCategory.SECONDARY: 1,
        ProductCategory.ACCESSORY: 1,
    },
}


def consumption_for(therapy_type: TherapyType | str) -> ConsumptionVector:
    """
    Get the consumption vector of a dose type.

    Raises:
        ValueError: If the type is not a known dose variant.
    """
    return dict(CONSUMPTION_VECTORS[TherapyType(therapy_type)])


_RECORD_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    use_enum_values=True,
)

# Category of the seeded products, for records stored without one
CATEGORY_BY_PRODUCT_ID: dict[str, ProductCategory] = {
    "syringe": ProductCategory.PRIMARY,
    "cannula": ProductCategory.SECONDARY,
    "adapter": ProductCategory.ACCESSORY,
}


class Product(BaseModel):
    """A consumable kept in stock."""

    id: str = Field(min_length=1, description="Stable product key")
    name: str = Field(description="Display name")
    code: str = Field(description="Supplier or catalogue code")
    stock: int = Field(ge=0, description="Units on hand")
    min_threshold: int = Field(ge=0, description="Reorder level")
    category: ProductCategory = Field(description="Consumable category")

    model_config = _RECORD_CONFIG

    @model_validator(mode="before")
    @classmethod
    def _derive_category(cls, data: Any) -> Any:
        """Fill in the category of records stored as {id, name, code, stock, minThreshold}."""
        if not isinstance(data, dict) or data.get("category") is not None:
            return data

        product_id = data.get("id")
        if isinstance(product_id, str):
            category = CATEGORY_BY_PRODUCT_ID.get(product_id)
            if category is None and product_id in {c.value for c in ProductCategory}:
                category = ProductCategory(product_id)
            if category is not None:
                data = {**data, "category": category}
        return data

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.min_threshold


class TherapyEvent(BaseModel):
    """
    One logged dose.

    ``day`` is persisted as ``date`` and ``therapy_type`` as ``type``.
    """

    id: str = Field(description="Time-derived unique identifier")
    day: date = Field(alias="date", description="Calendar day of the dose")
    therapy_type: TherapyType = Field(alias="type", description="Dose variant")
    timestamp: int = Field(description="Logging instant in epoch milliseconds")

    model_config = _RECORD_CONFIG


class UsageReport(BaseModel):
    """Running per-category consumption for one month."""

    month: str = Field(pattern=r"^\d{4}-\d{2}$", description="Month key YYYY-MM")
    year: int
    primary: int = Field(default=0, ge=0)
    secondary: int = Field(default=0, ge=0)
    accessory: int = Field(default=0, ge=0)

    model_config = _RECORD_CONFIG

    def count(self, category: ProductCategory | str) -> int:
        """Get the counter of one category."""
        return int(getattr(self, ProductCategory(category).value))

    def add(self, vector: ConsumptionVector) -> None:
        """Increment the counters by a consumption vector."""
        for category, quantity in vector.items():
            name = ProductCategory(category).value
            setattr(self, name, getattr(self, name) + quantity)


DEFAULT_REMINDER_TEXT = "Time for your therapy! Remember to take your infusion."


class NotificationSettings(BaseModel):
    """Daily reminder preferences. Only stored here; delivery happens elsewhere."""

    enabled: bool = True
    time: str = Field(default="08:15", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    custom_text: str = DEFAULT_REMINDER_TEXT
    last_notified: date | None = None
    snoozed_until: datetime | None = None

    model_config = _RECORD_CONFIG


def default_products() -> list[Product]:
    """Fresh copy of the inventory seeded on first run."""
    return [
        Product(
            id="syringe",
            name="Syringe 20ml",
            code="SIR001",
            stock=10,
            min_threshold=5,
            category=ProductCategory.PRIMARY,
        ),
        Product(
            id="cannula",
            name="Subcutaneous cannula 27G",
            code="CAN001",
            stock=15,
            min_threshold=8,
            category=ProductCategory.SECONDARY,
        ),
        Product(
            id="adapter",
            name="Luer lock adapter",
            code="ADA001",
            stock=20,
            min_threshold=10,
            category=ProductCategory.ACCESSORY,
        ),
    ]
