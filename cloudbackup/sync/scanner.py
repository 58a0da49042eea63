"""Folder listings with content hashes for sync operations."""

import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

from ..api import OneDriveClient
from ..exceptions import APIError, CreateError, ListError, NotFoundError
from ..models import Item
from ..utils import HASH_CHUNK_SIZE, is_hidden, normalize_remote_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HashedFile:
    """A file inside a folder together with a digest of its contents."""

    folder: str
    """Path of the containing folder (informational only)"""

    filename: str
    """Name of the file; unique within one listing"""

    hash: str
    """Lowercase hex digest of the contents, "" if unavailable"""


def by_filename(entry: HashedFile) -> bytes:
    """Sort key ordering entries by the raw bytes of their file name.

    Byte-wise ordering is locale independent and total, so local and
    remote listings sort identically.
    """
    return entry.filename.encode("utf-8", "surrogateescape")


class LocalFilesystem:
    """Lists a local folder and hashes every file in it.

    Hashes are only comparable between providers using the same
    algorithm. ``OneDriveFilesystem`` reports SHA-1, so reconciling
    against it requires the default ``hashlib.sha1``; with any other
    factory every remote file looks like a hash mismatch.

    Examples:
        >>> fs = LocalFilesystem()
        >>> files = fs.list_files("/home/user/pictures")
        >>> files[0].hash
        '2fd4e1c67a2d28fced849ee1bb76e7391b93eb12'
    """

    def __init__(self, hash_factory: Optional[Callable[[], Any]] = None):
        """Initialize the local listing provider.

        Args:
            hash_factory: Callable returning a fresh hashlib-style object
                (default: ``hashlib.sha1``, which is what OneDrive reports)
        """
        self.hash_factory = hash_factory or hashlib.sha1

    def hash_file(self, path: Union[str, Path]) -> str:
        """Compute the hex digest of a file.

        Raises:
            IsADirectoryError: If ``path`` is a directory
            OSError: If the file cannot be read
        """
        path = Path(path)
        if path.is_dir():
            raise IsADirectoryError(str(path))

        hasher = self.hash_factory()
        with open(path, "rb") as f:
            while True:
                chunk = f.read(HASH_CHUNK_SIZE)
                if not chunk:
                    break
                hasher.update(chunk)
        return hasher.hexdigest()

    def list_files(self, path: str) -> list[HashedFile]:
        """List and hash the files directly inside ``path``.

        Raises:
            ListError: If the folder or one of its files cannot be read
        """
        folder = Path(path)
        if not folder.is_dir():
            raise ListError(f"Local folder does not exist: {path}")

        results: list[HashedFile] = []
        try:
            for item in folder.iterdir():
                if is_hidden(item.name) or item.is_dir():
                    continue
                results.append(
                    HashedFile(
                        folder=os.fspath(folder),
                        filename=item.name,
                        hash=self.hash_file(item),
                    )
                )
        except OSError as e:
            raise ListError(f"Failed to read local folder {path}: {e}") from e

        logger.debug("Hashed %d local file(s) in %s", len(results), path)
        return results


def remote_hashed_files(folder: str, items: list[Item]) -> list[HashedFile]:
    """Turn a children listing into hashed entries, skipping folders."""
    results: list[HashedFile] = []
    for item in items:
        if item.is_folder:
            logger.debug("Skipping remote subfolder %s", item.name)
            continue
        if is_hidden(item.name):
            continue
        results.append(
            HashedFile(folder=folder, filename=item.name, hash=item.sha1_hash)
        )

    logger.debug("Found %d remote file(s) in /%s", len(results), folder)
    return results


class OneDriveFilesystem:
    """Lists a OneDrive folder using the SHA-1 hashes reported by the API."""

    def __init__(self, client: OneDriveClient):
        """Initialize the remote listing provider.

        Args:
            client: OneDrive API client
        """
        self.client = client

    def list_files(self, path: str) -> list[HashedFile]:
        """List the files directly inside the remote folder ``path``.

        Raises:
            ListError: If the folder does not exist
            APIError: If the API call fails
        """
        folder = normalize_remote_path(path)
        try:
            items = self.client.list_children(folder)
        except NotFoundError as e:
            raise ListError(f"Remote folder does not exist: /{folder}") from e
        return remote_hashed_files(folder, items)

    def ensure_folder(self, path: str) -> None:
        """Make sure the remote folder exists, creating it if necessary.

        Raises:
            CreateError: If the path is taken by a file or creation fails
        """
        folder = normalize_remote_path(path)
        if not folder:
            return

        try:
            item = self.client.get_metadata(folder)
        except NotFoundError:
            logger.debug("Remote folder /%s not found, creating it", folder)
            try:
                self.client.create_folder_at(folder)
            except APIError as e:
                raise CreateError(f"Failed when creating folder /{folder}: {e}") from e
            return
        except APIError as e:
            raise CreateError(f"Could not locate remote folder /{folder}: {e}") from e

        if not item.is_folder:
            raise CreateError(f"Remote path is not a folder: /{folder}")


class ReadOnlyOneDriveFilesystem:
    """Lists a OneDrive folder without ever creating it.

    Used for dry runs and plans. It has no ``ensure_folder``, so the
    reconciler leaves the remote untouched, and a missing folder lists as
    empty, which is what it would contain right after being created.
    """

    def __init__(self, client: OneDriveClient):
        self.client = client

    def list_files(self, path: str) -> list[HashedFile]:
        """List the files directly inside ``path``, or nothing if it is missing.

        Raises:
            APIError: If the API call fails
        """
        folder = normalize_remote_path(path)
        try:
            items = self.client.list_children(folder)
        except NotFoundError:
            logger.debug("Remote folder /%s does not exist yet", folder)
            return []
        return remote_hashed_files(folder, items)
