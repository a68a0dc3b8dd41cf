"""Configuration management for freecost sync.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


@dataclass
class Config:
    """Application configuration."""

    # Local storage
    data_dir: Path
    db_path: Path
    cursor_path: Path
    photo_dir: Path
    photo_cache_dir: Path

    # Active tenant
    location_id: Optional[str]

    # Remote store
    supabase_url: Optional[str]
    supabase_key: Optional[str]
    supabase_email: Optional[str]
    supabase_password: Optional[str]
    supabase_access_token: Optional[str]
    storage_bucket: str

    # Sync
    request_timeout: float  # seconds
    sync_retry_max: int
    sync_retry_base_delay: float  # seconds

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        data_dir = Path(
            os.environ.get("FREECOST_DATA_DIR", str(Path.home() / ".freecost"))
        ).expanduser()

        def _path(var: str, default: Path) -> Path:
            return Path(os.environ.get(var, str(default))).expanduser()

        return cls(
            data_dir=data_dir,
            db_path=_path("FREECOST_DB_PATH", data_dir / "freecost.db"),
            cursor_path=_path("FREECOST_CURSOR_PATH", data_dir / "last_sync_time.txt"),
            photo_dir=_path("FREECOST_PHOTO_DIR", data_dir / "photos"),
            photo_cache_dir=_path("FREECOST_PHOTO_CACHE_DIR", data_dir / "photo_cache"),
            location_id=os.environ.get("FREECOST_LOCATION_ID") or None,
            supabase_url=os.environ.get("SUPABASE_URL"),
            supabase_key=os.environ.get("SUPABASE_ANON_KEY"),
            supabase_email=os.environ.get("SUPABASE_EMAIL"),
            supabase_password=os.environ.get("SUPABASE_PASSWORD"),
            supabase_access_token=os.environ.get("SUPABASE_ACCESS_TOKEN"),
            storage_bucket=os.environ.get("FREECOST_STORAGE_BUCKET", "photos"),
            request_timeout=float(os.environ.get("FREECOST_REQUEST_TIMEOUT", "30")),
            sync_retry_max=int(os.environ.get("FREECOST_SYNC_RETRY_MAX", "5")),
            sync_retry_base_delay=float(
                os.environ.get("FREECOST_SYNC_RETRY_DELAY", "1.0")
            ),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        # Check data directory is writable
        for directory in (self.data_dir, self.db_path.parent, self.cursor_path.parent):
            if not directory.exists():
                try:
                    directory.mkdir(parents=True, exist_ok=True)
                except PermissionError:
                    errors.append(f"Cannot create directory: {directory}")

        if self.sync_retry_max < 1:
            errors.append("FREECOST_SYNC_RETRY_MAX must be at least 1")

        return errors

    def has_remote_config(self) -> bool:
        """Check if remote store configuration is present."""
        return bool(self.supabase_url and self.supabase_key)

    def has_credentials(self) -> bool:
        """Check if there is a way to authenticate against the remote store."""
        return bool(
            self.supabase_access_token
            or (self.supabase_email and self.supabase_password)
        )


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
