"""Directory-to-album sync orchestration."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from nostalgia.api_client import GooglePhotosClient
from nostalgia.models import RemoteAlbum, SyncSummary
from nostalgia.state import AlbumState
from nostalgia.upload_queue import QueueSettings, UploadQueue
from nostalgia.utils import (
    display_name,
    find_name_collisions,
    format_size,
    list_source_directories,
    scan_media_files,
)

logger = logging.getLogger(__name__)


class DirectorySyncer:
    """Syncs each subdirectory of a source root into a same-titled album."""

    def __init__(
        self,
        api_client: GooglePhotosClient,
        source_root: Path,
        settings: QueueSettings | None = None,
        dry_run: bool = False,
    ) -> None:
        """Initialize directory syncer.

        Args:
            api_client: Google Photos client instance
            source_root: Directory whose subdirectories are synced
            settings: Upload queue tunables
            dry_run: If True, report what would be uploaded without API calls
                or state writes
        """
        self.api_client = api_client
        self.source_root = source_root
        self.settings = settings or QueueSettings()
        self.dry_run = dry_run

    async def sync_all(self) -> list[SyncSummary]:
        """Sync every subdirectory of the source root, one at a time.

        The first directory-level error aborts the whole run.

        Returns:
            One summary per directory, in processing order
        """
        directories = list_source_directories(self.source_root)
        logger.info(f"Found {len(directories)} directories in {self.source_root}")

        summaries: list[SyncSummary] = []
        for directory in directories:
            summaries.append(await self.sync_directory(directory))
        return summaries

    async def sync_directory(self, directory: str) -> SyncSummary:
        """Sync one subdirectory into its album.

        Args:
            directory: Name of the subdirectory, also the album title

        Returns:
            Counters for this run

        Raises:
            PhotosAPIError: If the album cannot be found or created
            StateFileError: If the persisted state is malformed
            OSError: If the directory cannot be read
        """
        logger.info(f"Syncing directory '{directory}'")
        directory_path = self.source_root / directory
        summary = SyncSummary(directory=directory)

        state = await AlbumState.load(directory_path)
        files = await asyncio.to_thread(scan_media_files, directory_path)
        logger.info(f"Found {len(files)} media file(s) in '{directory}'")

        for name, paths in find_name_collisions(list(files)).items():
            logger.warning(f"Files {paths} will all be uploaded as '{name}'")

        to_upload: dict[str, int] = {}
        for file, size in files.items():
            if state.is_synced(file):
                logger.debug(f"File '{file}' already present in album, ignoring")
                summary.ignored += 1
            else:
                to_upload[file] = size

        if self.dry_run:
            logger.info(f"[DRY RUN] Would sync album '{directory}'")
            for file, size in to_upload.items():
                logger.info(f"[DRY RUN] Would upload '{file}' ({format_size(size)})")
                summary.added += 1
                summary.uploaded_bytes += size
            return summary

        # TODO: look the album up by the id stored in state before falling back to the title
        album = await self._resolve_album(directory)
        await state.set_album_id(album.id)

        queue = UploadQueue(self.settings)
        for file in to_upload:
            queue.add_job(file, self._make_job(album, state, directory_path, file, summary))

        logger.info(f"Starting {len(queue)} upload(s) to '{directory}'")
        await queue.run()

        summary.failed = len(queue.abandoned)
        logger.info(
            f"Directory '{directory}' synced: ignored={summary.ignored} added={summary.added} "
            f"failed={summary.failed} uploaded={format_size(summary.uploaded_bytes)} "
            f"cooldowns={len(queue.cooldowns)}"
        )
        return summary

    async def _resolve_album(self, title: str) -> RemoteAlbum:
        album = await self.api_client.search_album(title)
        if album is None:
            logger.info(f"Album '{title}' doesn't exist, creating new one")
            return await self.api_client.create_album(title)
        logger.info(f"Album '{title}' already present, using it")
        return album

    def _make_job(
        self,
        album: RemoteAlbum,
        state: AlbumState,
        directory_path: Path,
        file: str,
        summary: SyncSummary,
    ) -> Callable[[], Awaitable[None]]:
        file_path = directory_path / file

        async def upload_and_append() -> None:
            size = (await asyncio.to_thread(file_path.stat)).st_size
            logger.info(f"Uploading new file '{file}' ({format_size(size)})")
            media = await self.api_client.upload(file_path, size, display_name(file))
            logger.info(f"Adding file '{file}' to album")
            await self.api_client.append(album, media)
            await state.record_synced(file, media.id)
            summary.added += 1
            summary.uploaded_bytes += size

        return upload_and_append
