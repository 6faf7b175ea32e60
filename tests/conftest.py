"""Pytest configuration and shared fixtures."""

import asyncio
import itertools
from collections import Counter
from pathlib import Path

import pytest
from tenacity import wait_none

from nostalgia.api_client import GooglePhotosClient, ServerError
from nostalgia.models import RemoteAlbum, RemoteMedia


class FakePhotosClient:
    """In-memory stand-in for the Google Photos client.

    Failures are injected per base file name: ``upload_failures["a.jpg"] = 2``
    makes the first two uploads of that file raise ``ServerError``.
    ``upload_cancellations`` does the same with ``asyncio.CancelledError``.
    """

    def __init__(self) -> None:
        self.albums: dict[str, RemoteAlbum] = {}
        self.album_items: dict[str, list[str]] = {}
        self.created_albums: list[str] = []
        self.uploads: list[tuple[str, int, str]] = []
        self.upload_failures: Counter[str] = Counter()
        self.upload_cancellations: Counter[str] = Counter()
        self.append_failures: Counter[str] = Counter()
        self.calls = 0
        self._ids = itertools.count(1)

    async def search_album(self, title: str) -> RemoteAlbum | None:
        self.calls += 1
        return self.albums.get(title)

    async def create_album(self, title: str) -> RemoteAlbum:
        self.calls += 1
        album = RemoteAlbum(id=f"album_{next(self._ids)}", title=title)
        self.albums[title] = album
        self.album_items[album.id] = []
        self.created_albums.append(title)
        return album

    async def upload(self, path: Path, size: int, filename: str) -> RemoteMedia:
        self.calls += 1
        self.uploads.append((path.name, size, filename))
        if self.upload_cancellations[path.name] > 0:
            self.upload_cancellations[path.name] -= 1
            raise asyncio.CancelledError()
        if self.upload_failures[path.name] > 0:
            self.upload_failures[path.name] -= 1
            raise ServerError(f"upload of {path.name} failed")
        return RemoteMedia(id=f"media_{next(self._ids)}", filename=filename)

    async def append(self, album: RemoteAlbum, media: RemoteMedia) -> None:
        self.calls += 1
        name = media.filename.split(") ", 1)[-1] if media.filename else ""
        if self.append_failures[name] > 0:
            self.append_failures[name] -= 1
            raise ServerError(f"append of {name} failed")
        self.album_items[album.id].append(media.id)


@pytest.fixture
def fake_client() -> FakePhotosClient:
    """Return an in-memory photos client."""
    return FakePhotosClient()


@pytest.fixture
def temp_media_dir(tmp_path: Path) -> Path:
    """Create a temporary source root with media directories.

    Structure:
        temp_dir/
            Trip2019/
                a.jpg        (500 bytes)
                b.mp4        (empty)
                notes.txt
            Family/
                photo1.JPG
                nested/
                    clip.mov
            not_a_dir.txt
    """
    trip = tmp_path / "Trip2019"
    trip.mkdir()
    (trip / "a.jpg").write_bytes(b"x" * 500)
    (trip / "b.mp4").write_bytes(b"")
    (trip / "notes.txt").write_text("not media")

    family = tmp_path / "Family"
    (family / "nested").mkdir(parents=True)
    (family / "photo1.JPG").write_bytes(b"fake jpg content")
    (family / "nested" / "clip.mov").write_bytes(b"fake mov content")

    (tmp_path / "not_a_dir.txt").write_text("not a directory")

    return tmp_path


@pytest.fixture
def access_token() -> str:
    """Return a fake access token for testing."""
    return "test_access_token_123"


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make tenacity retry immediately instead of backing off."""
    monkeypatch.setattr(GooglePhotosClient.search_album.retry, "wait", wait_none())
    monkeypatch.setattr(GooglePhotosClient.create_album.retry, "wait", wait_none())
