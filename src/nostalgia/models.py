"""Data models for the one-way album sync."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class RemoteAlbum:
    """An album on the remote photo service."""

    id: str
    title: str

    def __post_init__(self) -> None:
        """Validate album data."""
        if not self.id:
            raise ValueError("Album ID cannot be empty")


@dataclass(frozen=True)
class RemoteMedia:
    """A media item created on the remote photo service."""

    id: str
    filename: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Media item ID cannot be empty")


@dataclass(frozen=True)
class SyncRecord:
    """A local file that has been uploaded and appended to its album."""

    local_path: str
    remote_id: str

    def __post_init__(self) -> None:
        """Validate sync record."""
        if not self.local_path:
            raise ValueError("Sync record must have a local path")
        if not self.remote_id:
            raise ValueError("Sync record must have a remote ID")


@dataclass
class UploadJob:
    """One retryable unit of work for a single local file.

    The action must be safe to run again after a partial failure.
    """

    file_key: str
    action: Callable[[], Awaitable[None]]
    attempts: int = 0


@dataclass
class SyncSummary:
    """Counters reported after syncing one directory."""

    directory: str
    ignored: int = 0
    added: int = 0
    uploaded_bytes: int = 0
    failed: int = 0
