"""Upload operations applied to a worklist."""

from pathlib import Path
from typing import Callable, Optional

from ..api import OneDriveClient
from ..exceptions import UploadError
from ..utils import join_remote_path
from .comparator import SyncDecision, SyncStatus


class SyncOperations:
    """Transfers files selected by the reconciler."""

    def __init__(self, client: OneDriveClient):
        """Initialize sync operations.

        Args:
            client: OneDrive API client
        """
        self.client = client

    def upload(
        self,
        decision: SyncDecision,
        local_folder: Path,
        remote_folder: str,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> SyncDecision:
        """Upload the file behind a decision and mark it as uploaded.

        The hash reported by the server is compared against the local hash
        when the server returns one.

        Args:
            decision: Decision with status NEEDS_SYNC
            local_folder: Local folder holding the file
            remote_folder: Remote destination folder
            progress_callback: Optional progress callback
                function(bytes_uploaded, total_bytes)

        Returns:
            A copy of the decision with status UPLOADED

        Raises:
            UploadError: If the upload fails or the remote hash differs
        """
        item = self.client.upload_file(
            file_path=Path(local_folder) / decision.filename,
            remote_path=join_remote_path(remote_folder, decision.filename),
            progress_callback=progress_callback,
        )
        if item.sha1_hash and item.sha1_hash != decision.hash:
            raise UploadError(
                f"Uploaded {decision.filename} but remote hash {item.sha1_hash} "
                f"differs from local hash {decision.hash}"
            )
        return decision.with_status(SyncStatus.UPLOADED)
