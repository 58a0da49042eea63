"""Reconciliation of a local folder against its remote mirror."""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from ..exceptions import LocalHashMissingError, RemoteNotCleanError
from .protocols import ListingProvider, RemoteListingProvider
from .scanner import HashedFile, by_filename

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    """State of a single file with respect to the remote mirror."""

    ALREADY_SYNCED = "Already synchronized"
    """Remote holds an identical copy"""

    NEEDS_SYNC = "Needs sync"
    """File is missing on the remote and has to be uploaded"""

    UPLOADED = "Uploaded"
    """File was uploaded by the caller after reconciliation"""


@dataclass(frozen=True)
class SyncDecision:
    """Sync status of one local file."""

    entry: HashedFile
    """The local file"""

    status: SyncStatus
    """What needs to happen with the file"""

    error: Optional[str] = None
    """Error attached by the caller, never set by the reconciler"""

    @property
    def folder(self) -> str:
        return self.entry.folder

    @property
    def filename(self) -> str:
        return self.entry.filename

    @property
    def hash(self) -> str:
        return self.entry.hash

    def with_status(self, status: SyncStatus) -> "SyncDecision":
        """Return a copy of this decision with a different status."""
        return replace(self, status=status)

    def to_dict(self) -> dict:
        """Convert decision to dictionary for JSON output."""
        return {
            "folder": self.folder,
            "filename": self.filename,
            "hash": self.hash,
            "status": self.status.value,
            "error": self.error,
        }


class Syncer:
    """Decides which local files have to be uploaded to the remote folder.

    The remote folder must be a subset of the local one: every remote file
    needs a local file of the same name and hash. Anything else aborts the
    whole reconciliation with ``RemoteNotCleanError``.

    A Syncer keeps no state between calls.

    Examples:
        >>> syncer = Syncer(LocalFilesystem(), OneDriveFilesystem(client))
        >>> for decision in syncer.sync_status("/home/me/pics", "Pictures"):
        ...     print(decision.filename, decision.status.value)
    """

    def __init__(self, local: ListingProvider, remote: ListingProvider):
        """Initialize the syncer.

        Args:
            local: Provider for the source folder
            remote: Provider for the mirror folder
        """
        self.local = local
        self.remote = remote

    def sync_status(self, local_path: str, remote_path: str) -> list[SyncDecision]:
        """Reconcile ``local_path`` against ``remote_path``.

        Returns:
            One decision per local file, ordered by file name

        Raises:
            LocalHashMissingError: If a local file has no hash; raised
                before the remote side is touched
            RemoteNotCleanError: If the remote folder holds unknown or
                differing files
        """
        local_files = self.local.list_files(local_path)

        for file in local_files:
            if not file.hash:
                raise LocalHashMissingError(file.filename)

        if isinstance(self.remote, RemoteListingProvider):
            self.remote.ensure_folder(remote_path)

        remote_files = self.remote.list_files(remote_path)

        return self.worklist(local_files, remote_files)

    def worklist(
        self,
        local_files: list[HashedFile],
        remote_files: list[HashedFile],
    ) -> list[SyncDecision]:
        """Merge two listings into a worklist.

        Both listings are sorted by file name and walked in lockstep. The
        first inconsistency aborts the merge; no partial worklist is
        returned. The input lists are not modified.

        Raises:
            RemoteNotCleanError: If the remote listing is not a subset of
                the local one
        """
        local_sorted = sorted(local_files, key=by_filename)
        remote_sorted = sorted(remote_files, key=by_filename)

        files: list[SyncDecision] = []
        local_idx = 0
        remote_idx = 0
        while local_idx < len(local_sorted) or remote_idx < len(remote_sorted):
            if local_idx >= len(local_sorted):
                # Remote has files we never saw locally
                raise RemoteNotCleanError(remote_sorted[remote_idx].filename)

            if remote_idx >= len(remote_sorted):
                files.append(SyncDecision(local_sorted[local_idx], SyncStatus.NEEDS_SYNC))
                local_idx += 1
                continue

            local = local_sorted[local_idx]
            remote = remote_sorted[remote_idx]
            local_key = by_filename(local)
            remote_key = by_filename(remote)

            if local_key == remote_key:
                if local.hash != remote.hash:
                    raise RemoteNotCleanError(
                        remote.filename, RemoteNotCleanError.HASH_MISMATCH
                    )
                files.append(SyncDecision(local, SyncStatus.ALREADY_SYNCED))
                local_idx += 1
                remote_idx += 1
            elif local_key < remote_key:
                files.append(SyncDecision(local, SyncStatus.NEEDS_SYNC))
                local_idx += 1
            else:
                raise RemoteNotCleanError(remote.filename)

        logger.debug(
            "Worklist has %d file(s), %d need sync",
            len(files),
            sum(1 for f in files if f.status == SyncStatus.NEEDS_SYNC),
        )
        return files
