"""cloud-backup - one-way backup of a local folder into OneDrive."""

from .api import OneDriveClient
from .auth import OAuthSession
from .exceptions import (
    APIError,
    AuthenticationError,
    CloudBackupError,
    ConfigError,
    CreateError,
    ListError,
    LocalHashMissingError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    RemoteNotCleanError,
    SyncError,
    UploadError,
)
from .sync import HashedFile, SyncDecision, Syncer, SyncStatus

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "OneDriveClient",
    "OAuthSession",
    "Syncer",
    "SyncDecision",
    "SyncStatus",
    "HashedFile",
    "APIError",
    "AuthenticationError",
    "CloudBackupError",
    "ConfigError",
    "CreateError",
    "ListError",
    "LocalHashMissingError",
    "NetworkError",
    "NotFoundError",
    "PermissionDeniedError",
    "RateLimitError",
    "RemoteNotCleanError",
    "SyncError",
    "UploadError",
]
