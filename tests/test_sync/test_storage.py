"""Tests for remote object storage."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from src.freecost.sync.errors import NetworkError
from src.freecost.sync.storage import ObjectStorage, is_remote_url

BASE_URL = "https://project.supabase.co"


@pytest.fixture
def remote() -> MagicMock:
    client = MagicMock()
    client.url = BASE_URL
    return client


@pytest.fixture
def storage(remote: MagicMock, tmp_path: Path) -> ObjectStorage:
    return ObjectStorage(remote, bucket="photos", cache_dir=tmp_path / "cache")


class TestIsRemoteUrl:
    """Tests for URL detection."""

    def test_http_and_https(self):
        assert is_remote_url("https://cdn.example.com/a.jpg")
        assert is_remote_url("HTTP://cdn.example.com/a.jpg")

    def test_local_values(self):
        assert not is_remote_url("/home/chef/a.jpg")
        assert not is_remote_url("a.jpg")
        assert not is_remote_url("")
        assert not is_remote_url(None)


class TestUpload:
    """Tests for uploading files."""

    def test_upload_returns_public_url(self, storage: ObjectStorage, remote: MagicMock, tmp_path: Path):
        photo = tmp_path / "stock.jpg"
        photo.write_bytes(b"jpeg-bytes")

        url = storage.upload(photo, "Recipe/r1/stock.jpg")

        assert url == f"{BASE_URL}/storage/v1/object/public/photos/Recipe/r1/stock.jpg"
        method, path = remote.request.call_args.args
        kwargs = remote.request.call_args.kwargs
        assert method == "POST"
        assert path == "/storage/v1/object/photos/Recipe/r1/stock.jpg"
        assert kwargs["data"] == b"jpeg-bytes"
        assert kwargs["headers"]["Content-Type"] == "image/jpeg"
        assert kwargs["headers"]["x-upsert"] == "true"

    def test_upload_fills_cache(self, storage: ObjectStorage, tmp_path: Path):
        photo = tmp_path / "stock.png"
        photo.write_bytes(b"png-bytes")

        storage.upload(photo, "Recipe/r1/stock.png")

        assert (tmp_path / "cache" / "Recipe" / "r1" / "stock.png").read_bytes() == b"png-bytes"

    def test_upload_missing_file(self, storage: ObjectStorage, remote: MagicMock, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            storage.upload(tmp_path / "missing.jpg", "Recipe/r1/missing.jpg")
        remote.request.assert_not_called()

    def test_upload_network_error(self, storage: ObjectStorage, remote: MagicMock, tmp_path: Path):
        photo = tmp_path / "stock.jpg"
        photo.write_bytes(b"jpeg-bytes")
        remote.request.side_effect = NetworkError("HTTP error: 502")

        with pytest.raises(NetworkError):
            storage.upload(photo, "Recipe/r1/stock.jpg")


class TestDownload:
    """Tests for downloading with the local cache."""

    def test_download_then_cached(self, storage: ObjectStorage, remote: MagicMock):
        remote.request.return_value = MagicMock(content=b"remote-bytes")

        first = storage.download("Entree/e1/plate.jpg")
        second = storage.download("Entree/e1/plate.jpg")

        assert first == second == b"remote-bytes"
        assert remote.request.call_count == 1

    def test_empty_download_rejected(self, storage: ObjectStorage, remote: MagicMock):
        remote.request.return_value = MagicMock(content=b"")

        with pytest.raises(NetworkError):
            storage.download("Entree/e1/plate.jpg")

    def test_cache_path_must_stay_inside_cache(self, storage: ObjectStorage):
        with pytest.raises(ValueError):
            storage.download("../../etc/passwd")


class TestDeleteAndCache:
    """Tests for deleting objects and managing the cache."""

    def test_delete(self, storage: ObjectStorage, remote: MagicMock, tmp_path: Path):
        cached = tmp_path / "cache" / "Recipe" / "r1" / "stock.jpg"
        cached.parent.mkdir(parents=True)
        cached.write_bytes(b"x")

        assert storage.delete("Recipe/r1/stock.jpg") is True
        assert remote.request.call_args.kwargs["json"] == {"prefixes": ["Recipe/r1/stock.jpg"]}
        assert not cached.exists()

    def test_delete_failure(self, storage: ObjectStorage, remote: MagicMock):
        remote.request.side_effect = NetworkError("HTTP error: 500")

        assert storage.delete("Recipe/r1/stock.jpg") is False

    def test_cache_size_and_clear(self, storage: ObjectStorage, tmp_path: Path):
        cached = tmp_path / "cache" / "Recipe" / "r1" / "stock.jpg"
        cached.parent.mkdir(parents=True)
        cached.write_bytes(b"12345")

        assert storage.cache_size() == 5
        storage.clear_cache()
        assert storage.cache_size() == 0

    def test_no_cache_dir(self, remote: MagicMock):
        storage = ObjectStorage(remote)

        assert storage.cache_size() == 0
        storage.clear_cache()
