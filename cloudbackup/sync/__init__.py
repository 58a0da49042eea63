"""Reconciliation and upload of a local folder into its remote mirror."""

from .comparator import SyncDecision, Syncer, SyncStatus
from .engine import SyncEngine
from .operations import SyncOperations
from .protocols import ListingProvider, RemoteListingProvider
from .scanner import (
    HashedFile,
    LocalFilesystem,
    OneDriveFilesystem,
    ReadOnlyOneDriveFilesystem,
    by_filename,
)

__all__ = [
    "SyncEngine",
    "Syncer",
    "SyncOperations",
    "SyncDecision",
    "SyncStatus",
    "HashedFile",
    "ListingProvider",
    "RemoteListingProvider",
    "LocalFilesystem",
    "OneDriveFilesystem",
    "ReadOnlyOneDriveFilesystem",
    "by_filename",
]
