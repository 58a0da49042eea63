"""Utility functions for cloud-backup."""

import posixpath

# =============================================================================
# Constants for file operations
# =============================================================================

# Read size used while hashing local files (1 MB)
HASH_CHUNK_SIZE: int = 1024 * 1024

# Read size used while streaming an upload (256 KB)
UPLOAD_CHUNK_SIZE: int = 256 * 1024

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Hidden-file marker; names starting with it are never synchronized
HIDDEN_PREFIX: str = "."


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


# =============================================================================
# Remote path utilities
# =============================================================================


def normalize_remote_path(path: str) -> str:
    """Normalize a remote path to the form used in ``root:/...`` URLs.

    Backslashes become forward slashes, duplicate and trailing slashes
    are removed and the leading slash is stripped. The drive root is "".

    Examples:
        >>> normalize_remote_path("/Pictures//2015/")
        'Pictures/2015'
        >>> normalize_remote_path("/")
        ''
    """
    path = path.replace("\\", "/")
    parts = [part for part in path.split("/") if part and part != "."]
    return "/".join(parts)


def split_remote_path(path: str) -> tuple[str, str]:
    """Split a remote path into (parent, name).

    Examples:
        >>> split_remote_path("Pictures/2015")
        ('Pictures', '2015')
        >>> split_remote_path("Backup")
        ('', 'Backup')
    """
    normalized = normalize_remote_path(path)
    parent, name = posixpath.split(normalized)
    return parent, name


def join_remote_path(folder: str, name: str) -> str:
    """Join a remote folder and a file name.

    Examples:
        >>> join_remote_path("/Pictures/2015", "a.jpg")
        'Pictures/2015/a.jpg'
        >>> join_remote_path("", "a.jpg")
        'a.jpg'
    """
    folder = normalize_remote_path(folder)
    return f"{folder}/{name}" if folder else name


def is_hidden(name: str) -> bool:
    """Check whether a file name is hidden."""
    return name.startswith(HIDDEN_PREFIX)
