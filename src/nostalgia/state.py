"""Per-directory sync state persisted as JSON next to the media files."""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any

from nostalgia.models import SyncRecord

logger = logging.getLogger(__name__)

# Reserved file name inside every synced directory. Not a media extension.
STATE_FILE_NAME = "nostalgia.json"


class StateFileError(Exception):
    """Raised when a persisted state file cannot be parsed."""

    pass


class AlbumState:
    """Durable record of the remote album and the files already synced to it.

    Every mutation rewrites the whole file. Writes on one instance are
    serialized with a lock, and each write snapshots the state after
    acquiring it, so the latest value is always flushed.
    """

    def __init__(self, directory: Path) -> None:
        """Initialize an empty state for a directory.

        Args:
            directory: Local directory the state belongs to
        """
        self.path = Path(directory) / STATE_FILE_NAME
        self.album_id: str | None = None
        self._synced: dict[str, SyncRecord] = {}
        self._lock = asyncio.Lock()

    @classmethod
    async def load(cls, directory: Path) -> "AlbumState":
        """Load persisted state for a directory.

        A missing or empty state file yields an empty state.

        Args:
            directory: Local directory to load state for

        Returns:
            The loaded state

        Raises:
            StateFileError: If the state file exists but is malformed
        """
        state = cls(directory)
        logger.debug(f"Loading local album state from {state.path}")
        try:
            contents = await asyncio.to_thread(state.path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return state

        if not contents.strip():
            return state

        try:
            data = json.loads(contents)
        except ValueError as e:
            raise StateFileError(f"Invalid JSON in state file {state.path}: {e}") from e

        state._apply(data)
        logger.debug(
            f"Loaded state for album {state.album_id} with {len(state._synced)} synced file(s)"
        )
        return state

    def _apply(self, data: Any) -> None:
        if not isinstance(data, dict):
            raise StateFileError(f"State file {self.path} must contain a JSON object")

        album_id = data.get("id")
        if album_id is not None and not isinstance(album_id, str):
            raise StateFileError(f"State file {self.path} has a non-string album id")

        synced = data.get("synced")
        if synced is None:
            synced = {}
        if not isinstance(synced, dict):
            raise StateFileError(f"State file {self.path} has a malformed 'synced' mapping")

        records: dict[str, SyncRecord] = {}
        for local_path, entry in synced.items():
            remote_id = entry.get("id") if isinstance(entry, dict) else None
            if not isinstance(remote_id, str) or not remote_id:
                raise StateFileError(
                    f"State file {self.path} has a malformed entry for '{local_path}'"
                )
            records[local_path] = SyncRecord(local_path=local_path, remote_id=remote_id)

        self.album_id = album_id
        self._synced = records

    @property
    def synced(self) -> dict[str, SyncRecord]:
        """Copy of the synced records, keyed by relative path."""
        return dict(self._synced)

    def is_synced(self, local_path: str) -> bool:
        """Check whether a file has already been added to the album.

        Args:
            local_path: Path relative to the directory, POSIX separators

        Returns:
            True if a remote id is recorded for the file
        """
        return local_path in self._synced

    async def set_album_id(self, album_id: str) -> None:
        """Set the remote album id and persist immediately."""
        logger.debug(f"Updating album id in {self.path}")
        self.album_id = album_id
        await self._save()

    async def record_synced(self, local_path: str, remote_id: str) -> None:
        """Record a file as synced and persist immediately.

        Must only be called once the remote append has been confirmed.
        """
        logger.debug(f"Recording '{local_path}' as synced in {self.path}")
        self._synced[local_path] = SyncRecord(local_path=local_path, remote_id=remote_id)
        await self._save()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted JSON shape, paths sorted."""
        return {
            "id": self.album_id,
            "synced": {
                path: {"id": record.remote_id}
                for path, record in sorted(self._synced.items())
            },
        }

    async def _save(self) -> None:
        async with self._lock:
            payload = json.dumps(self.to_dict(), indent=2)
            await asyncio.to_thread(self._write, payload)

    def _write(self, payload: str) -> None:
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        with tmp_path.open("w", encoding="utf-8") as fp:
            fp.write(payload)
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(tmp_path, self.path)
