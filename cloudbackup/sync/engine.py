"""Core sync engine for executing sync operations."""

import logging
import time
from pathlib import Path
from typing import Callable, Optional

from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TransferSpeedColumn,
)

from ..api import OneDriveClient
from ..output import OutputFormatter
from .comparator import SyncDecision, Syncer, SyncStatus
from .operations import SyncOperations
from .scanner import LocalFilesystem, OneDriveFilesystem, ReadOnlyOneDriveFilesystem

logger = logging.getLogger(__name__)


class SyncEngine:
    """Backs up a local folder into a OneDrive folder."""

    def __init__(
        self,
        client: OneDriveClient,
        output: Optional[OutputFormatter] = None,
    ):
        """Initialize sync engine.

        Local files are hashed with SHA-1, the digest OneDrive reports.

        Args:
            client: OneDrive API client
            output: Output formatter for displaying progress/status
        """
        self.client = client
        self.output = output or OutputFormatter()
        local = LocalFilesystem()
        # Creates the remote folder if missing
        self.syncer = Syncer(local, OneDriveFilesystem(client))
        # Never modifies the remote, for plans and dry runs
        self.planner = Syncer(local, ReadOnlyOneDriveFilesystem(client))
        self.operations = SyncOperations(client)

    def plan(
        self, local_path: Path, remote_path: str, create_remote: bool = False
    ) -> list[SyncDecision]:
        """Reconcile the folders and return the worklist without uploading.

        Args:
            local_path: Local folder to back up
            remote_path: Remote destination folder
            create_remote: Create the remote folder if it is missing;
                otherwise a missing folder is treated as empty

        Raises:
            ValueError: If the local path is not an existing directory
            SyncError: If reconciliation fails
        """
        if not local_path.exists():
            raise ValueError(f"Local directory does not exist: {local_path}")
        if not local_path.is_dir():
            raise ValueError(f"Local path is not a directory: {local_path}")

        syncer = self.syncer if create_remote else self.planner
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            disable=self.output.quiet,
        ) as progress:
            progress.add_task("Comparing local and remote folders...", total=None)
            return syncer.sync_status(str(local_path), remote_path)

    def sync(
        self,
        local_path: Path,
        remote_path: str,
        dry_run: bool = False,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> dict:
        """Upload every file the remote folder is missing.

        Stops at the first failed upload; files uploaded before the failure
        stay on the remote and show up as already synchronized next time.

        Args:
            local_path: Local folder to back up
            remote_path: Remote destination folder
            dry_run: If True, only show what would be uploaded
            progress_callback: Optional callback for upload progress

        Returns:
            Dictionary with sync statistics and the final worklist

        Examples:
            >>> engine = SyncEngine(client)
            >>> stats = engine.sync(Path("/home/me/pics"), "Pictures", dry_run=True)
            >>> print(f"Would upload {stats['uploads']} files")
        """
        if not self.output.quiet:
            self.output.info(f"Syncing: {local_path} -> /{remote_path.strip('/')}")
            if dry_run:
                self.output.info("Dry run: No changes will be made")
            self.output.print("")

        worklist = self.plan(local_path, remote_path, create_remote=not dry_run)
        stats = self._categorize_decisions(worklist)
        self._display_sync_plan(stats, worklist)

        if not dry_run:
            worklist = self._execute_decisions(
                worklist, local_path, remote_path, progress_callback
            )

        if not self.output.quiet:
            self._display_summary(stats, dry_run)

        stats["files"] = [decision.to_dict() for decision in worklist]
        return stats

    def _categorize_decisions(self, decisions: list[SyncDecision]) -> dict:
        """Count decisions per status."""
        stats = {"uploads": 0, "skips": 0, "total": len(decisions)}
        for decision in decisions:
            if decision.status == SyncStatus.NEEDS_SYNC:
                stats["uploads"] += 1
            elif decision.status == SyncStatus.ALREADY_SYNCED:
                stats["skips"] += 1
        return stats

    def _display_sync_plan(self, stats: dict, decisions: list[SyncDecision]) -> None:
        """Display sync plan to user."""
        if self.output.quiet:
            return

        self.output.info("Sync plan:")
        if stats["uploads"] > 0:
            self.output.info(f"  ↑ Upload: {stats['uploads']} file(s)")
        if stats["skips"] > 0:
            self.output.info(f"  = Already synchronized: {stats['skips']} file(s)")
        for decision in decisions:
            logger.debug("%s: %s", decision.filename, decision.status.value)
        self.output.print("")

    def _execute_decisions(
        self,
        decisions: list[SyncDecision],
        local_path: Path,
        remote_path: str,
        progress_callback: Optional[Callable[[int, int], None]],
    ) -> list[SyncDecision]:
        """Upload every NEEDS_SYNC decision in worklist order.

        Returns:
            The worklist with uploaded files marked UPLOADED

        Raises:
            APIError: On the first failed upload
        """
        results: list[SyncDecision] = []
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            disable=self.output.quiet,
        ) as progress:
            for decision in decisions:
                if decision.status != SyncStatus.NEEDS_SYNC:
                    logger.debug("Skipping %s, already synchronized", decision.filename)
                    results.append(decision)
                    continue

                task = progress.add_task(f"Uploading {decision.filename}", total=None)

                def on_progress(sent: int, total: int, task=task) -> None:
                    progress.update(task, completed=sent, total=total)
                    if progress_callback:
                        progress_callback(sent, total)

                start = time.time()
                try:
                    uploaded = self.operations.upload(
                        decision, local_path, remote_path, on_progress
                    )
                except Exception as e:
                    # Reported once by the caller
                    logger.debug("Upload of %s failed: %s", decision.filename, e)
                    raise
                logger.debug(
                    "Upload of %s took %.2fs", decision.filename, time.time() - start
                )
                results.append(uploaded)
        return results

    def _display_summary(self, stats: dict, dry_run: bool) -> None:
        """Display sync summary."""
        self.output.print("")
        if dry_run:
            self.output.success("Dry run complete!")
        else:
            self.output.success("Sync complete!")

        if stats["uploads"] > 0:
            verb = "Would upload" if dry_run else "Uploaded"
            self.output.info(f"  {verb}: {stats['uploads']}")
        else:
            self.output.info("No changes needed - everything is in sync!")
