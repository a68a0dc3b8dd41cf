"""Pytest configuration and shared fixtures.

This module provides fixtures for testing freecost sync, including a
temporary database, sample records, and in-memory fakes of the remote
store and object storage.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Generator, Optional
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from src.freecost.config import reset_config
from src.freecost.db.schemas import (
    EntreeRecord,
    IngredientRecord,
    RecipeRecord,
    SyncRecord,
)
from src.freecost.db.sqlite import Database, reset_db
from src.freecost.sync.cursor import CursorStore
from src.freecost.sync.errors import NetworkError, NotAuthenticatedError
from src.freecost.sync.orchestrator import SyncOrchestrator
from src.freecost.sync.remote import UpsertResult
from src.freecost.utils import parse_timestamp

LOCATION_ID = "6f1c2a4e-0000-4000-8000-000000000001"
OTHER_LOCATION_ID = "6f1c2a4e-0000-4000-8000-000000000002"
T0 = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# Fakes
# ============================================================================


class FakeRemote:
    """In-memory stand-in for RemoteClient.

    Rows are kept per table in wire format, keyed by id.
    """

    url = "https://project.supabase.co"

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict[str, Any]]] = {
            "ingredients": {},
            "recipes": {},
            "entrees": {},
        }
        self.locations: list[dict[str, Any]] = []
        self.is_authenticated = True
        self.user_id = "user-1"
        self.fail_fetch: set[str] = set()
        self.fail_upsert: set[str] = set()
        self.reject_auth = False
        self.fetch_calls: list[tuple[str, str, Optional[datetime]]] = []
        self.upserts: list[tuple[str, list[dict[str, Any]]]] = []

    def connect(self, email=None, password=None, access_token=None) -> None:
        if self.reject_auth:
            raise NotAuthenticatedError("Remote rejected credentials (401)")
        self.is_authenticated = True

    def disconnect(self) -> None:
        self.is_authenticated = False

    def __enter__(self) -> "FakeRemote":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.disconnect()

    def put(self, record: SyncRecord) -> None:
        """Store a record remotely as if another device had pushed it."""
        self.tables[record.kind.table][record.id] = record.to_wire()

    def fetch_rows(
        self, table: str, location_id: str, modified_after: Optional[datetime] = None
    ) -> list[dict[str, Any]]:
        self.fetch_calls.append((table, location_id, modified_after))
        if self.reject_auth:
            raise NotAuthenticatedError("Remote rejected credentials (401)")
        if table in self.fail_fetch:
            raise NetworkError("HTTP error: 503")
        rows = []
        for row in self.tables[table].values():
            if row["location_id"] != location_id:
                continue
            # unparseable stamps are returned so the caller sees the bad row
            stamp = parse_timestamp(row["modified_at"])
            if modified_after is None or stamp is None or stamp > modified_after:
                rows.append(dict(row))
        return sorted(rows, key=lambda r: (str(r["modified_at"]), r["id"]))

    def upsert_rows(self, table: str, rows: list[dict[str, Any]]) -> UpsertResult:
        if table in self.fail_upsert:
            return UpsertResult(success=False, error="HTTP error: 500")
        self.upserts.append((table, rows))
        for row in rows:
            self.tables[table][row["id"]] = dict(row)
        return UpsertResult(success=True, count=len(rows))

    def list_locations(self) -> list[dict[str, Any]]:
        return list(self.locations)

    def uploaded_ids(self, table: Optional[str] = None) -> list[str]:
        return [row["id"] for t, rows in self.upserts if table in (None, t) for row in rows]


class FakeStorage:
    """In-memory stand-in for ObjectStorage."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.failing_names: set[str] = set()

    def upload(self, local_path: Path, logical_path: str) -> str:
        local_path = Path(local_path)
        if local_path.name in self.failing_names:
            raise NetworkError("HTTP error: 502")
        self.objects[logical_path] = local_path.read_bytes()
        return f"https://project.supabase.co/storage/v1/object/public/photos/{logical_path}"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    # Cleanup
    if db_path.exists():
        db_path.unlink()


@pytest.fixture(scope="function")
def db(temp_db_path: Path) -> Generator[Database, None, None]:
    """Create a test database instance."""
    # Reset any global state
    reset_db()
    reset_config()

    os.environ["FREECOST_DB_PATH"] = str(temp_db_path)

    database = Database(str(temp_db_path))
    database.create_tables()
    yield database

    # Cleanup
    database.engine.dispose()
    reset_db()
    if "FREECOST_DB_PATH" in os.environ:
        del os.environ["FREECOST_DB_PATH"]


@pytest.fixture(scope="function")
def session(db: Database) -> Generator[Session, None, None]:
    """Create a database session for testing."""
    with db.get_session() as sess:
        yield sess


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def location_id() -> str:
    """Active location used by the record factories."""
    return LOCATION_ID


@pytest.fixture
def other_location_id() -> str:
    """A second location that must never leak into the active one."""
    return OTHER_LOCATION_ID


@pytest.fixture
def t0() -> datetime:
    """Fixed reference time in the past."""
    return T0


@pytest.fixture
def make_ingredient() -> Callable[..., IngredientRecord]:
    """Factory for ingredient records."""

    def _make(
        id: Optional[str] = None,
        modified_at: datetime = T0,
        location_id: str = LOCATION_ID,
        **fields: Any,
    ) -> IngredientRecord:
        data = {"name": "Butter", "unit": "lb", "current_price": 4.25}
        data.update(fields)
        return IngredientRecord(
            id=id or str(uuid4()),
            location_id=location_id,
            created_at=modified_at - timedelta(days=1),
            modified_at=modified_at,
            **data,
        )

    return _make


@pytest.fixture
def make_recipe() -> Callable[..., RecipeRecord]:
    """Factory for recipe records."""

    def _make(
        id: Optional[str] = None,
        modified_at: datetime = T0,
        location_id: str = LOCATION_ID,
        **fields: Any,
    ) -> RecipeRecord:
        data = {"name": "Brown Butter Sauce", "yield_amount": 2.0, "yield_unit": "qt"}
        data.update(fields)
        return RecipeRecord(
            id=id or str(uuid4()),
            location_id=location_id,
            created_at=modified_at - timedelta(days=1),
            modified_at=modified_at,
            **data,
        )

    return _make


@pytest.fixture
def make_entree() -> Callable[..., EntreeRecord]:
    """Factory for entree records."""

    def _make(
        id: Optional[str] = None,
        modified_at: datetime = T0,
        location_id: str = LOCATION_ID,
        **fields: Any,
    ) -> EntreeRecord:
        data = {"name": "Seared Scallops", "menu_price": 32.0}
        data.update(fields)
        return EntreeRecord(
            id=id or str(uuid4()),
            location_id=location_id,
            created_at=modified_at - timedelta(days=1),
            modified_at=modified_at,
            **data,
        )

    return _make


@pytest.fixture
def photo_dir(tmp_path: Path) -> Path:
    """Directory holding local photo files."""
    path = tmp_path / "photos"
    path.mkdir()
    return path


@pytest.fixture
def make_photo(photo_dir: Path) -> Callable[[str], Path]:
    """Write a small fake JPEG into the photo directory."""

    def _make(name: str) -> Path:
        path = photo_dir / name
        path.write_bytes(b"\xff\xd8\xff\xe0" + name.encode())
        return path

    return _make


# ============================================================================
# Sync Fixtures
# ============================================================================


@pytest.fixture
def fake_remote() -> FakeRemote:
    """In-memory remote store, signed in."""
    return FakeRemote()


@pytest.fixture
def fake_storage() -> FakeStorage:
    """In-memory object storage."""
    return FakeStorage()


@pytest.fixture
def cursor_store(tmp_path: Path) -> CursorStore:
    """Cursor store backed by a temporary file."""
    return CursorStore(tmp_path / "last_sync_time.txt")


@pytest.fixture
def orchestrator(
    db: Database,
    fake_remote: FakeRemote,
    fake_storage: FakeStorage,
    cursor_store: CursorStore,
    photo_dir: Path,
) -> SyncOrchestrator:
    """Orchestrator wired to the fakes."""
    return SyncOrchestrator(
        db=db,
        remote=fake_remote,
        storage=fake_storage,
        cursor_store=cursor_store,
        photo_dir=photo_dir,
    )
