"""Remote object storage for entity photos.

Strategy:
- Files live in a remote bucket, addressed by ``{Kind}/{entityId}/{filename}``
- Uploads overwrite (upsert), so repeating an upload is harmless
- Downloads are cached locally to avoid re-downloading
"""

import logging
import mimetypes
import shutil
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote

from .errors import NetworkError
from .remote import RemoteClient

logger = logging.getLogger(__name__)

REMOTE_URL_PREFIXES = ("http://", "https://")


def is_remote_url(value: Optional[str]) -> bool:
    """True if the value already points at a remote asset."""
    return bool(value) and value.lower().startswith(REMOTE_URL_PREFIXES)


class ObjectStorage:
    """Upload, download and delete files in a remote storage bucket."""

    def __init__(
        self,
        client: RemoteClient,
        bucket: str = "photos",
        cache_dir: Optional[Path] = None,
    ):
        """Initialize object storage.

        Args:
            client: Connected remote client
            bucket: Storage bucket name
            cache_dir: Local cache directory (no caching if None)
        """
        self.client = client
        self.bucket = bucket
        self.cache_dir = Path(cache_dir) if cache_dir else None

    def _object_path(self, logical_path: str) -> str:
        return f"/storage/v1/object/{self.bucket}/{quote(logical_path)}"

    def public_url(self, logical_path: str) -> str:
        """Public URL of an object."""
        return f"{self.client.url}/storage/v1/object/public/{self.bucket}/{quote(logical_path)}"

    def upload(self, local_path: Union[str, Path], logical_path: str) -> str:
        """Upload a local file, overwriting any existing object.

        Args:
            local_path: File to upload
            logical_path: Destination path inside the bucket

        Returns:
            Public URL of the uploaded object

        Raises:
            FileNotFoundError: If local_path does not exist
            NetworkError: If the upload fails
        """
        local_path = Path(local_path)
        data = local_path.read_bytes()
        content_type = mimetypes.guess_type(local_path.name)[0] or "application/octet-stream"

        self.client.request(
            "POST",
            self._object_path(logical_path),
            data=data,
            headers={"Content-Type": content_type, "x-upsert": "true"},
        )
        self._write_cache(logical_path, data)

        url = self.public_url(logical_path)
        logger.info("Uploaded %s (%d bytes) to %s", local_path.name, len(data), logical_path)
        return url

    def download(self, logical_path: str) -> bytes:
        """Get an object's bytes, from the local cache when available."""
        cached = self._cache_path(logical_path)
        if cached is not None and cached.exists():
            logger.debug("Using cached %s", logical_path)
            return cached.read_bytes()

        response = self.client.request("GET", self._object_path(logical_path))
        data = response.content
        if not data:
            raise NetworkError(f"Downloaded object is empty: {logical_path}", retryable=False)

        self._write_cache(logical_path, data)
        logger.info("Downloaded %s (%d bytes)", logical_path, len(data))
        return data

    def delete(self, logical_path: str) -> bool:
        """Delete an object and its cached copy.

        Returns:
            True if the remote delete succeeded
        """
        try:
            self.client.request(
                "DELETE",
                f"/storage/v1/object/{self.bucket}",
                json={"prefixes": [logical_path]},
            )
        except NetworkError as e:
            logger.warning("Failed to delete %s: %s", logical_path, e)
            return False

        cached = self._cache_path(logical_path)
        if cached is not None and cached.exists():
            cached.unlink()
        logger.info("Deleted %s", logical_path)
        return True

    # ========================================================================
    # Local Cache
    # ========================================================================

    def _cache_path(self, logical_path: str) -> Optional[Path]:
        if self.cache_dir is None:
            return None
        path = (self.cache_dir / logical_path).resolve()
        # Keep cache writes inside the cache directory
        if self.cache_dir.resolve() not in path.parents:
            raise ValueError(f"Invalid storage path: {logical_path}")
        return path

    def _write_cache(self, logical_path: str, data: bytes) -> None:
        cached = self._cache_path(logical_path)
        if cached is None:
            return
        try:
            cached.parent.mkdir(parents=True, exist_ok=True)
            cached.write_bytes(data)
        except OSError as e:
            logger.warning("Could not cache %s: %s", logical_path, e)

    def clear_cache(self) -> None:
        """Remove every cached file."""
        if self.cache_dir is not None and self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Cleared photo cache %s", self.cache_dir)

    def cache_size(self) -> int:
        """Total size of cached files in bytes."""
        if self.cache_dir is None or not self.cache_dir.exists():
            return 0
        return sum(f.stat().st_size for f in self.cache_dir.rglob("*") if f.is_file())
