"""Tests for wire record schemas."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from src.freecost.db.schemas import (
    RECORD_TYPES,
    SYNC_ORDER,
    EntityKind,
    EntreeRecord,
    IngredientRecord,
    LocationRecord,
    RecipeRecord,
)


class TestEntityKind:
    """Tests for entity kind metadata."""

    def test_sync_order(self):
        """Upstream kinds come first."""
        assert SYNC_ORDER == (EntityKind.INGREDIENT, EntityKind.RECIPE, EntityKind.ENTREE)

    def test_table_names(self):
        assert EntityKind.INGREDIENT.table == "ingredients"
        assert EntityKind.RECIPE.table == "recipes"
        assert EntityKind.ENTREE.table == "entrees"

    def test_storage_folders(self):
        """Assets are stored under the capitalized kind name."""
        assert EntityKind.RECIPE.storage_folder == "Recipe"
        assert EntityKind.ENTREE.storage_folder == "Entree"

    def test_record_types(self):
        assert RECORD_TYPES[EntityKind.INGREDIENT] is IngredientRecord
        assert RECORD_TYPES[EntityKind.RECIPE].kind == EntityKind.RECIPE
        assert RECORD_TYPES[EntityKind.ENTREE] is EntreeRecord


class TestTimestamps:
    """Tests for timestamp normalization."""

    def test_parses_zulu_suffix(self):
        """Remote timestamps ending in Z become aware UTC datetimes."""
        record = IngredientRecord.model_validate(
            {
                "id": "ing-1",
                "location_id": "loc-1",
                "name": "Flour",
                "modified_at": "2025-01-15T12:00:00.123456Z",
            }
        )

        assert record.modified_at == datetime(2025, 1, 15, 12, 0, 0, 123456, tzinfo=timezone.utc)

    def test_naive_datetime_assumed_utc(self):
        record = IngredientRecord(
            id="ing-1",
            location_id="loc-1",
            name="Flour",
            modified_at=datetime(2025, 1, 15, 12, 0),
        )

        assert record.modified_at.tzinfo == timezone.utc

    def test_offset_converted_to_utc(self):
        record = IngredientRecord.model_validate(
            {
                "id": "ing-1",
                "location_id": "loc-1",
                "name": "Flour",
                "modified_at": "2025-01-15T14:00:00+02:00",
            }
        )

        assert record.modified_at == datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def test_invalid_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            IngredientRecord.model_validate(
                {"id": "ing-1", "location_id": "loc-1", "name": "Flour", "modified_at": "yesterday"}
            )

    def test_missing_modified_at_rejected(self):
        with pytest.raises(ValidationError):
            IngredientRecord.model_validate({"id": "ing-1", "location_id": "loc-1", "name": "Flour"})


class TestWireFormat:
    """Tests for conversion to and from remote rows."""

    def test_unknown_remote_columns_ignored(self):
        """Columns added remotely do not break parsing."""
        record = EntreeRecord.model_validate(
            {
                "id": "ent-1",
                "location_id": "loc-1",
                "name": "Scallops",
                "modified_at": "2025-01-15T12:00:00Z",
                "food_cost_percent": 28.5,
            }
        )

        assert record.name == "Scallops"
        assert "food_cost_percent" not in record.to_wire()

    def test_recipe_yield_alias(self):
        """The recipe yield travels as 'yield' on the wire."""
        record = RecipeRecord.model_validate(
            {
                "id": "rec-1",
                "location_id": "loc-1",
                "name": "Stock",
                "yield": 4,
                "modified_at": "2025-01-15T12:00:00Z",
            }
        )

        assert record.yield_amount == 4.0
        wire = record.to_wire()
        assert wire["yield"] == 4.0
        assert "yield_amount" not in wire

    def test_to_wire_formats_timestamps(self):
        record = IngredientRecord(
            id="ing-1",
            location_id="loc-1",
            name="Flour",
            created_at=datetime(2025, 1, 14, tzinfo=timezone.utc),
            modified_at=datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc),
        )

        wire = record.to_wire()

        assert wire["modified_at"] == "2025-01-15T12:00:00.000000+00:00"
        assert wire["created_at"] == "2025-01-14T00:00:00.000000+00:00"
        assert wire["location_id"] == "loc-1"

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            IngredientRecord(
                id="ing-1",
                location_id="loc-1",
                name="Flour",
                current_price=-1,
                modified_at=datetime(2025, 1, 15, tzinfo=timezone.utc),
            )

    def test_location_record(self):
        location = LocationRecord.model_validate(
            {
                "id": "loc-1",
                "user_id": "user-1",
                "name": "Downtown",
                "modified_at": "2025-01-15T12:00:00Z",
            }
        )

        assert location.is_active is True
        assert location.address is None
