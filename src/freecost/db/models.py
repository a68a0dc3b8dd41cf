"""SQLAlchemy ORM models for the local SQLite store.

Tables:
- locations: Tenants the signed-in user can work in
- ingredients: Purchasable ingredients with pricing
- recipes: Recipes (optional photo)
- entrees: Menu items (optional photo)

Timestamps are stored as fixed-width ISO strings (see utils.format_timestamp)
so that ``modified_at > :cursor`` works as a plain string comparison.
"""

from typing import ClassVar, Optional
from uuid import uuid4

from sqlalchemy import Boolean, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..utils import format_timestamp, utcnow
from .schemas import (
    EntityKind,
    EntreeRecord,
    IngredientRecord,
    LocationRecord,
    RecipeRecord,
    SyncRecord,
    TimestampedRecord,
)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def now_timestamp() -> str:
    """Current UTC time in storage format."""
    return format_timestamp(utcnow())


class RecordMixin:
    """Identity/timestamp columns plus conversion to and from wire records."""

    record_type: ClassVar[type[TimestampedRecord]]

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    created_at: Mapped[str] = mapped_column(String(32), default=now_timestamp)
    modified_at: Mapped[str] = mapped_column(
        String(32), default=now_timestamp, index=True
    )

    def to_record(self) -> TimestampedRecord:
        """Convert this row to its wire record.

        Raises:
            pydantic.ValidationError: If the stored row is malformed
        """
        data = {name: getattr(self, name) for name in self.record_type.model_fields}
        return self.record_type.model_validate(data)

    def apply_record(self, record: TimestampedRecord) -> None:
        """Copy every field from a wire record onto this row, keeping the id."""
        for name in self.record_type.model_fields:
            if name == "id":
                continue
            value = getattr(record, name)
            if name in ("created_at", "modified_at"):
                if value is None:
                    continue
                value = format_timestamp(value)
            setattr(self, name, value)

    @classmethod
    def from_record(cls, record: TimestampedRecord) -> "RecordMixin":
        """Create a new row from a wire record."""
        row = cls(id=record.id)
        row.apply_record(record)
        return row


class Location(RecordMixin, Base):
    """Location model - one tenant's partition of the data."""

    __tablename__ = "locations"
    record_type = LocationRecord

    user_id: Mapped[Optional[str]] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(500))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<Location(id={self.id}, name='{self.name}')>"


class SyncableMixin(RecordMixin):
    """Columns shared by every tenant-scoped syncable row."""

    kind: ClassVar[EntityKind]

    record_type: ClassVar[type[SyncRecord]]

    location_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)


class Ingredient(SyncableMixin, Base):
    """Ingredient model."""

    __tablename__ = "ingredients"
    kind = EntityKind.INGREDIENT
    record_type = IngredientRecord

    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    unit: Mapped[str] = mapped_column(String(20), default="each")
    current_price: Mapped[float] = mapped_column(Float, default=0.0)
    case_quantity: Mapped[Optional[float]] = mapped_column(Float)
    vendor_name: Mapped[Optional[str]] = mapped_column(String(200))
    vendor_sku: Mapped[Optional[str]] = mapped_column(String(100))
    category: Mapped[Optional[str]] = mapped_column(String(100))

    def __repr__(self) -> str:
        return f"<Ingredient(id={self.id}, name='{self.name}')>"


class Recipe(SyncableMixin, Base):
    """Recipe model."""

    __tablename__ = "recipes"
    kind = EntityKind.RECIPE
    record_type = RecipeRecord

    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    instructions: Mapped[Optional[str]] = mapped_column(Text)
    yield_amount: Mapped[float] = mapped_column("yield", Float, default=1.0)
    yield_unit: Mapped[str] = mapped_column(String(20), default="")
    prep_time_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    is_shared: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    photo_url: Mapped[Optional[str]] = mapped_column(Text)  # local path or URL

    def __repr__(self) -> str:
        return f"<Recipe(id={self.id}, name='{self.name}')>"


class Entree(SyncableMixin, Base):
    """Entree model."""

    __tablename__ = "entrees"
    kind = EntityKind.ENTREE
    record_type = EntreeRecord

    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    menu_price: Mapped[Optional[float]] = mapped_column(Float)
    servings_per_batch: Mapped[float] = mapped_column(Float, default=1.0)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    photo_url: Mapped[Optional[str]] = mapped_column(Text)  # local path or URL

    def __repr__(self) -> str:
        return f"<Entree(id={self.id}, name='{self.name}')>"


MODEL_TYPES: dict[EntityKind, type[SyncableMixin]] = {
    EntityKind.INGREDIENT: Ingredient,
    EntityKind.RECIPE: Recipe,
    EntityKind.ENTREE: Entree,
}
