"""Nostalgia - One-way sync of local media directories into Google Photos albums."""

__version__ = "0.1.0"

from nostalgia.api_client import GooglePhotosClient
from nostalgia.models import RemoteAlbum, RemoteMedia, SyncRecord, SyncSummary, UploadJob
from nostalgia.state import AlbumState, StateFileError
from nostalgia.syncer import DirectorySyncer
from nostalgia.upload_queue import QueueSettings, UploadQueue

__all__ = [
    "GooglePhotosClient",
    "RemoteAlbum",
    "RemoteMedia",
    "SyncRecord",
    "SyncSummary",
    "UploadJob",
    "AlbumState",
    "StateFileError",
    "DirectorySyncer",
    "QueueSettings",
    "UploadQueue",
]
