"""Pydantic schemas for syncable records.

These schemas define the wire representation shared by the local store and
the remote store. Every syncable entity carries the same identity and
timestamp columns; each kind adds its own payload fields.
"""

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils import format_timestamp, parse_timestamp


class EntityKind(str, Enum):
    """Kinds of records that take part in delta sync."""

    INGREDIENT = "ingredient"
    RECIPE = "recipe"
    ENTREE = "entree"

    @property
    def table(self) -> str:
        """Remote table name."""
        return f"{self.value}s"

    @property
    def label(self) -> str:
        """Plural label for progress messages."""
        return f"{self.value}s"

    @property
    def storage_folder(self) -> str:
        """Top-level folder used for this kind's assets in object storage."""
        return self.value.capitalize()


# Recipes reference ingredients and entrees reference recipes, so upstream
# kinds must be merged first.
SYNC_ORDER: tuple[EntityKind, ...] = (
    EntityKind.INGREDIENT,
    EntityKind.RECIPE,
    EntityKind.ENTREE,
)


# ============================================================================
# Base Schemas
# ============================================================================


class TimestampedRecord(BaseModel):
    """Identity and timestamp fields common to every remote row."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., min_length=1)
    created_at: Optional[datetime] = None
    modified_at: datetime

    @field_validator("created_at", "modified_at", mode="before")
    @classmethod
    def parse_utc(cls, v: Any) -> Any:
        """Normalize timestamps to aware UTC datetimes."""
        if v is None or isinstance(v, datetime):
            return parse_timestamp(v)
        if isinstance(v, str):
            parsed = parse_timestamp(v)
            if parsed is None:
                raise ValueError(f"Invalid timestamp: {v!r}")
            return parsed
        return v

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the remote wire format."""
        data = self.model_dump(by_alias=True)
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = format_timestamp(value)
        return data


class SyncRecord(TimestampedRecord):
    """A record that belongs to one tenant/location and takes part in sync."""

    kind: ClassVar[EntityKind]

    location_id: str = Field(..., min_length=1)


# ============================================================================
# Kind Schemas
# ============================================================================


class IngredientRecord(SyncRecord):
    """Purchasable ingredient with pricing."""

    kind: ClassVar[EntityKind] = EntityKind.INGREDIENT

    name: str = Field(..., min_length=1)
    unit: str = "each"
    current_price: float = Field(0.0, ge=0)
    case_quantity: Optional[float] = None
    vendor_name: Optional[str] = None
    vendor_sku: Optional[str] = None
    category: Optional[str] = None


class RecipeRecord(SyncRecord):
    """Recipe built from ingredients."""

    kind: ClassVar[EntityKind] = EntityKind.RECIPE

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    instructions: Optional[str] = None
    yield_amount: float = Field(1.0, alias="yield")
    yield_unit: str = ""
    prep_time_minutes: Optional[int] = Field(None, ge=0)
    category: Optional[str] = None
    is_shared: bool = False
    notes: Optional[str] = None
    photo_url: Optional[str] = None


class EntreeRecord(SyncRecord):
    """Menu item built from recipes and ingredients."""

    kind: ClassVar[EntityKind] = EntityKind.ENTREE

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    menu_price: Optional[float] = Field(None, ge=0)
    servings_per_batch: float = 1.0
    notes: Optional[str] = None
    photo_url: Optional[str] = None


class LocationRecord(TimestampedRecord):
    """A tenant/location the signed-in user has access to."""

    user_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool = True


RECORD_TYPES: dict[EntityKind, type[SyncRecord]] = {
    EntityKind.INGREDIENT: IngredientRecord,
    EntityKind.RECIPE: RecipeRecord,
    EntityKind.ENTREE: EntreeRecord,
}
