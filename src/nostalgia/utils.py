"""Utility functions for discovering local media."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

APP_NAME = "Nostalgia"

# File types accepted by Google Photos
# https://developers.google.com/photos/library/guides/upload-media#file-types-sizes
MEDIA_EXTENSIONS = {
    # Photos
    ".bmp", ".gif", ".heic", ".ico", ".jpg", ".jpeg", ".png", ".tiff", ".webp", ".raw",
    # Videos
    ".3gp", ".3g2", ".asf", ".avi", ".divx", ".m2t", ".m2ts", ".m4v", ".mkv",
    ".mmv", ".mod", ".mov", ".mp4", ".mpg", ".mts", ".tod", ".wmv",
}


def is_media_file(path: Path) -> bool:
    """Check if a file is a supported media format.

    Args:
        path: Path to the file to check

    Returns:
        True if the file is a supported media format, False otherwise
    """
    return path.is_file() and path.suffix.lower() in MEDIA_EXTENSIONS


def display_name(relative_path: str) -> str:
    """Name a file is uploaded under: the app prefix plus its base name."""
    return f"({APP_NAME} App) {Path(relative_path).name}"


def list_source_directories(root_dir: Path) -> list[str]:
    """List the immediate subdirectories of the source root.

    Args:
        root_dir: Root directory to scan

    Returns:
        Sorted subdirectory names

    Raises:
        FileNotFoundError: If root_dir doesn't exist
        NotADirectoryError: If root_dir is not a directory
    """
    if not root_dir.exists():
        raise FileNotFoundError(f"Root directory does not exist: {root_dir}")

    if not root_dir.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {root_dir}")

    directories = []
    for entry in sorted(root_dir.iterdir()):
        if not entry.is_dir():
            logger.debug(f"Skipping non-directory: {entry}")
            continue
        directories.append(entry.name)
    return directories


def scan_media_files(directory: Path) -> dict[str, int]:
    """Recursively collect media files under a directory.

    Zero-length files are skipped. Keys are POSIX paths relative to
    ``directory`` and serve as the file identity in sync state.

    Args:
        directory: Directory to scan

    Returns:
        Mapping of relative path to file size in bytes, in sorted order
    """
    files: dict[str, int] = {}
    for path in sorted(directory.rglob("*")):
        if not is_media_file(path):
            continue
        relative = path.relative_to(directory).as_posix()
        size = path.stat().st_size
        if size == 0:
            logger.debug(f"Skipping zero-length file: {relative}")
            continue
        files[relative] = size
    return files


def find_name_collisions(relative_paths: list[str]) -> dict[str, list[str]]:
    """Group relative paths that would share the same display name.

    Returns:
        Display name to the colliding paths, only for names used more than once
    """
    by_name: dict[str, list[str]] = {}
    for relative in relative_paths:
        by_name.setdefault(display_name(relative), []).append(relative)
    return {name: paths for name, paths in by_name.items() if len(paths) > 1}


def format_size(num_bytes: int) -> str:
    """Return a human-readable file size string."""
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(size) < 1024:
            return f"{size:.1f} {unit}" if unit != "B" else f"{int(size)} {unit}"
        size /= 1024
    return f"{size:.1f} PB"
