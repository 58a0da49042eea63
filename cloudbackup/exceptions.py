"""Exceptions raised by cloud-backup."""

from typing import Optional


class CloudBackupError(Exception):
    """Base exception for all cloud-backup errors."""


class ConfigError(CloudBackupError):
    """Client secrets or configuration are missing or invalid."""


class ListError(CloudBackupError):
    """A folder listing could not be produced."""


class CreateError(CloudBackupError):
    """A remote folder could not be created."""


# =========================
# Reconciliation errors
# =========================


class SyncError(CloudBackupError):
    """Base class for reconciliation failures."""


class LocalHashMissingError(SyncError):
    """A local file has no content hash."""

    def __init__(self, filename: str):
        self.filename = filename
        super().__init__(f"Local file has no hash: {filename}")


class RemoteNotCleanError(SyncError):
    """The remote folder holds files that do not match the local folder."""

    REMOTE_ONLY = "remote-only"
    HASH_MISMATCH = "hash-mismatch"

    def __init__(self, filename: Optional[str] = None, reason: str = REMOTE_ONLY):
        self.filename = filename
        self.reason = reason
        message = "Remote folder is not clean"
        if filename is not None:
            if reason == self.HASH_MISMATCH:
                message = f"{message}: {filename} has a different hash on the remote"
            else:
                message = f"{message}: {filename} exists only on the remote"
        super().__init__(message)


# =========================
# API errors
# =========================


class APIError(CloudBackupError):
    """An OneDrive API request failed."""


class AuthenticationError(APIError):
    """Invalid or expired credentials."""


class PermissionDeniedError(APIError):
    """Access to the resource was denied."""


class NotFoundError(APIError):
    """The requested path does not exist."""


class RateLimitError(APIError):
    """Too many requests."""


class NetworkError(APIError):
    """The request failed at the transport level."""


class InvalidResponseError(APIError):
    """The server returned something other than JSON."""


class UploadError(APIError):
    """A file transfer failed."""


class FileNotFoundLocalError(CloudBackupError):
    """A local file selected for upload no longer exists."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Local file not found: {path}")
