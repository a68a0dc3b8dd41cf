"""Database module for local SQLite storage."""

from .models import Entree, Ingredient, Location, Recipe
from .schemas import (
    SYNC_ORDER,
    EntityKind,
    EntreeRecord,
    IngredientRecord,
    LocationRecord,
    RecipeRecord,
    SyncRecord,
)
from .sqlite import Database, get_db

__all__ = [
    "Entree",
    "Ingredient",
    "Location",
    "Recipe",
    "SYNC_ORDER",
    "EntityKind",
    "EntreeRecord",
    "IngredientRecord",
    "LocationRecord",
    "RecipeRecord",
    "SyncRecord",
    "Database",
    "get_db",
]
