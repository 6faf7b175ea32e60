"""Google Photos Library API client using httpx for async HTTP calls."""

import asyncio
import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from nostalgia.models import RemoteAlbum, RemoteMedia

logger = logging.getLogger(__name__)

# Google Photos Library API base URL
PHOTOS_API_BASE_URL = "https://photoslibrary.googleapis.com/v1"

ALBUM_PAGE_SIZE = 50
UPLOAD_CHUNK_SIZE = 1024 * 1024


class PhotosAPIError(Exception):
    """Base exception for Google Photos API errors."""

    pass


class RateLimitError(PhotosAPIError):
    """Exception raised when hitting rate limits."""

    pass


class ServerError(PhotosAPIError):
    """Exception raised for 5xx server errors and network failures."""

    pass


async def iter_file(path: Path, chunk_size: int = UPLOAD_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Stream a file in chunks without blocking the event loop."""
    fp = await asyncio.to_thread(path.open, "rb")
    try:
        while chunk := await asyncio.to_thread(fp.read, chunk_size):
            yield chunk
    finally:
        fp.close()


class GooglePhotosClient:
    """Client for the album and upload endpoints of the Google Photos Library API.

    Album lookup and creation retry transient errors on their own.
    Uploads and appends raise straight away and leave retrying to the
    upload queue.
    """

    def __init__(self, access_token: str, timeout: float = 360.0) -> None:
        """Initialize Google Photos client.

        Args:
            access_token: OAuth2 bearer token with photoslibrary scopes
            timeout: Request timeout in seconds
        """
        self.access_token = access_token
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "GooglePhotosClient":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            base_url=PHOTOS_API_BASE_URL,
            headers={"Authorization": f"Bearer {self.access_token}"},
            timeout=self.timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
        self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the httpx AsyncClient instance.

        Raises:
            RuntimeError: If client is used outside of async context manager
        """
        if self._client is None:
            raise RuntimeError("Client must be used within async context manager")
        return self._client

    @retry(
        retry=retry_if_exception_type((RateLimitError, ServerError)),
        wait=wait_exponential(multiplier=1, min=1, max=60),
        stop=stop_after_attempt(5),
        reraise=True,
    )
    async def search_album(self, title: str) -> RemoteAlbum | None:
        """Find an album by exact title.

        Args:
            title: Album title

        Returns:
            The first album with that title, or None if there is none

        Raises:
            PhotosAPIError: If listing albums fails
        """
        params: dict[str, Any] = {"pageSize": ALBUM_PAGE_SIZE}
        while True:
            result = await self._request("GET", "/albums", f"searching album '{title}'", params=params)
            for album in result.get("albums", []):
                if album.get("title") == title:
                    logger.debug(f"Found album '{title}' with ID: {album['id']}")
                    return RemoteAlbum(id=album["id"], title=title)

            page_token = result.get("nextPageToken")
            if not page_token:
                return None
            params = {"pageSize": ALBUM_PAGE_SIZE, "pageToken": page_token}

    @retry(
        retry=retry_if_exception_type((RateLimitError, ServerError)),
        wait=wait_exponential(multiplier=1, min=1, max=60),
        stop=stop_after_attempt(5),
        reraise=True,
    )
    async def create_album(self, title: str) -> RemoteAlbum:
        """Create a new album.

        Args:
            title: Album title

        Returns:
            The created album

        Raises:
            PhotosAPIError: If album creation fails
        """
        result = await self._request(
            "POST", "/albums", f"creating album '{title}'", json={"album": {"title": title}}
        )
        album = RemoteAlbum(id=result["id"], title=result.get("title", title))
        logger.info(f"Created album '{title}' with ID: {album.id}")
        return album

    async def upload(self, path: Path, size: int, filename: str) -> RemoteMedia:
        """Upload a file's bytes and turn them into a library media item.

        Args:
            path: Local file to stream
            size: File size in bytes
            filename: Name the media item is created under

        Returns:
            The created media item

        Raises:
            PhotosAPIError: If the upload or item creation fails
        """
        context = f"uploading {filename}"
        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Length": str(size),
            "X-Goog-Upload-Content-Type": "application/octet-stream",
            "X-Goog-Upload-File-Name": filename,
            "X-Goog-Upload-Protocol": "raw",
        }
        try:
            response = await self.client.post("/uploads", content=iter_file(path), headers=headers)
        except httpx.RequestError as e:
            logger.warning(f"Network error while {context}: {e}")
            raise ServerError(f"Network error: {e}") from e

        if response.status_code >= 400:
            result = self._parse_json_response(response, context)
            self._handle_error_response(response.status_code, result, context)
        upload_token = response.text

        body = {
            "newMediaItems": [
                {"simpleMediaItem": {"uploadToken": upload_token, "fileName": filename}}
            ]
        }
        result = await self._request("POST", "/mediaItems:batchCreate", context, json=body)

        items = result.get("newMediaItemResults") or []
        if not items:
            raise PhotosAPIError(f"No media item returned while {context}")
        status = items[0].get("status", {})
        if status.get("code", 0) != 0:
            raise PhotosAPIError(
                f"Media item creation failed while {context}: {status.get('message', status)}"
            )

        media_id = items[0]["mediaItem"]["id"]
        logger.debug(f"Uploaded {filename}, media item ID: {media_id}")
        return RemoteMedia(id=media_id, filename=filename)

    async def append(self, album: RemoteAlbum, media: RemoteMedia) -> None:
        """Add an existing media item to an album.

        Raises:
            PhotosAPIError: If the item could not be added
        """
        await self._request(
            "POST",
            f"/albums/{album.id}:batchAddMediaItems",
            f"adding {media.id} to album '{album.title}'",
            json={"mediaItemIds": [media.id]},
        )

    async def _request(self, method: str, url: str, context: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            logger.warning(f"Network error while {context}: {e}")
            raise ServerError(f"Network error: {e}") from e

        if not response.content and response.status_code < 400:
            return {}

        result = self._parse_json_response(response, context)
        if response.status_code >= 400:
            self._handle_error_response(response.status_code, result, context)
        return result

    def _parse_json_response(
        self, response: httpx.Response, context: str
    ) -> dict[str, Any]:
        """Parse JSON response, handling non-JSON responses gracefully.

        Args:
            response: The httpx Response object
            context: Description of what operation was attempted

        Returns:
            Parsed JSON as a dictionary

        Raises:
            ServerError: If response is 5xx with non-JSON body
            PhotosAPIError: If response has invalid JSON for non-5xx status
        """
        try:
            return response.json()
        except ValueError:
            # Non-JSON response (e.g., HTML error page during outages)
            if response.status_code >= 500:
                logger.warning(f"Server returned non-JSON response while {context}")
                raise ServerError(
                    f"Server error {response.status_code}: {response.text[:200]}"
                )
            raise PhotosAPIError(
                f"Invalid API response while {context}: {response.text[:200]}"
            )

    def _handle_error_response(
        self, status_code: int, result: dict[str, Any], context: str
    ) -> None:
        """Handle error responses from the Library API.

        Args:
            status_code: HTTP status code
            result: Response JSON body
            context: Description of what operation failed

        Raises:
            RateLimitError: If rate limit is exceeded
            ServerError: If server error occurs
            PhotosAPIError: For other API errors
        """
        error = result.get("error", {})
        if not isinstance(error, dict):
            error = {"message": str(error)}
        error_status = error.get("status", "")
        error_message = error.get("message", str(result))

        if status_code == 429 or error_status == "RESOURCE_EXHAUSTED":
            logger.warning(f"Rate limit exceeded while {context}")
            raise RateLimitError(f"Google Photos rate limit exceeded: {error_message}")

        if status_code >= 500:
            logger.warning(f"Server error while {context}")
            raise ServerError(f"Google Photos server error: {error_message}")

        error_msg = f"Google Photos API error while {context}: {error_message}"
        logger.error(error_msg)
        raise PhotosAPIError(error_msg)
