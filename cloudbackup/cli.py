"""CLI interface for cloud-backup."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import click

from . import __version__
from .api import OneDriveClient
from .auth import OAuthSession
from .config import config
from .exceptions import CloudBackupError, LocalHashMissingError, RemoteNotCleanError
from .output import OutputFormatter
from .sync import OneDriveFilesystem, SyncEngine, by_filename
from .utils import normalize_remote_path

logger = logging.getLogger(__name__)


def make_session(ctx: Any) -> OAuthSession:
    """Create the OAuth session from the configured client secrets."""
    return OAuthSession.from_secret_file(ctx.obj.get("secret_file"))


@contextmanager
def make_client(ctx: Any) -> Iterator[OneDriveClient]:
    """Create an API client authorized with the cached token.

    The OAuth session stays open while the client is in use so that
    expired tokens can be refreshed; both are closed on exit.
    """
    session = make_session(ctx)
    try:
        # Fail early if there is no cached token
        session.get_token()
        with OneDriveClient(token_provider=session.access_token) as client:
            yield client
    finally:
        session.close()


def report_sync_error(out: OutputFormatter, error: CloudBackupError) -> None:
    """Explain a reconciliation failure to the user."""
    out.error(str(error))
    if isinstance(error, RemoteNotCleanError):
        out.info(
            "The remote folder must only contain files that also exist locally "
            "with identical contents. Clean it up and run the command again."
        )
    elif isinstance(error, LocalHashMissingError):
        out.info("A local file could not be hashed; check that it is readable.")


@click.group()
@click.option(
    "--secret-file",
    "-s",
    envvar="CLOUD_BACKUP_SECRET_FILE",
    help="OAuth client secrets JSON file",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(version=__version__, prog_name="cloud-backup")
@click.pass_context
def main(
    ctx: Any,
    secret_file: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """cloud-backup - Back up a local folder into a OneDrive folder."""
    ctx.ensure_object(dict)
    ctx.obj["secret_file"] = secret_file
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("cloudbackup").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option(
    "--no-browser",
    is_flag=True,
    help="Don't open a browser; paste the code or redirect URL instead",
)
@click.option(
    "--redirect-port",
    type=int,
    default=None,
    help="Port of the local redirect listener (default: from the redirect URI)",
)
@click.pass_context
def auth(ctx: Any, no_browser: bool, redirect_port: Optional[int]) -> None:
    """Authorize cloud-backup to access your OneDrive.

    Opens the authorization page in a browser and waits for it to redirect
    back to a local listener. With --no-browser the URL is only printed and
    the code (or the full redirect URL) is read from the prompt. The token
    is cached for later commands.
    """
    out: OutputFormatter = ctx.obj["out"]

    def open_browser(url: str) -> None:
        out.print("Authorize this app at:")
        out.print(url)
        click.launch(url)
        out.print("Waiting for the browser to redirect back...")

    def prompt(url: str) -> str:
        out.print("Authorize this app at:")
        out.print(url)
        return click.prompt("Paste the code or the URL you were redirected to")

    try:
        session = make_session(ctx)
        try:
            if no_browser:
                session.authorize(prompt)
            else:
                session.authorize_via_redirect(open_browser, port=redirect_port)
        finally:
            session.close()
        if ctx.obj.get("secret_file"):
            config.save_secret_file(ctx.obj["secret_file"])
    except CloudBackupError as e:
        out.error(f"Authorization failed: {e}")
        ctx.exit(1)
        return

    out.print_summary(
        "Authorization Complete",
        [
            ("Status", "✓ Token cached"),
            ("Token cache", str(session.cache_file)),
        ],
    )


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Show the drive owner and remaining quota."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        with make_client(ctx) as client:
            drive = client.get_drive()
    except CloudBackupError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json(drive.to_dict())
        return

    out.print(
        f"Connected to {drive.owner_name}'s drive "
        f"({out.format_size(drive.quota.remaining)} of "
        f"{out.format_size(drive.quota.total)} available)"
    )


@main.command()
@click.argument("remote_path", type=str, default="")
@click.pass_context
def ls(ctx: Any, remote_path: str) -> None:
    """List the files in a remote folder with their SHA-1 hashes.

    REMOTE_PATH: Remote folder (default: drive root)
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        with make_client(ctx) as client:
            files = OneDriveFilesystem(client).list_files(remote_path)
    except CloudBackupError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    rows = [
        {"filename": f.filename, "hash": f.hash}
        for f in sorted(files, key=by_filename)
    ]
    out.output_table(rows, ["filename", "hash"], {"filename": "Name", "hash": "SHA-1"})


@main.command()
@click.argument("local_path", type=click.Path(file_okay=False, path_type=Path))
@click.argument("remote_path", type=str)
@click.pass_context
def plan(ctx: Any, local_path: Path, remote_path: str) -> None:
    """Show which files would be uploaded.

    LOCAL_PATH: Local folder to back up
    REMOTE_PATH: Remote destination folder (created if missing)
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        with make_client(ctx) as client:
            engine_out = OutputFormatter(
                json_output=out.json_output, quiet=out.quiet or out.json_output
            )
            engine = SyncEngine(client, engine_out)
            worklist = engine.plan(local_path, normalize_remote_path(remote_path))
    except ValueError as e:
        out.error(str(e))
        ctx.exit(1)
        return
    except CloudBackupError as e:
        report_sync_error(out, e)
        ctx.exit(1)
        return

    out.output_table(
        [decision.to_dict() for decision in worklist],
        ["filename", "status", "hash"],
        {"filename": "Name", "status": "Status", "hash": "SHA-1"},
    )


@main.command()
@click.argument("local_path", type=click.Path(file_okay=False, path_type=Path))
@click.argument("remote_path", type=str)
@click.option(
    "--dry-run", is_flag=True, help="Show what would be uploaded without uploading"
)
@click.option("--no-progress", is_flag=True, help="Disable progress bars")
@click.pass_context
def sync(
    ctx: Any,
    local_path: Path,
    remote_path: str,
    dry_run: bool,
    no_progress: bool,
) -> None:
    """Upload every local file that is missing from the remote folder.

    The remote folder must not contain anything that the local folder
    doesn't have; otherwise nothing is uploaded.

    LOCAL_PATH: Local folder to back up (files only, no subfolders)
    REMOTE_PATH: Remote destination folder (created if missing)

    Examples:
        cloud-backup sync ~/Pictures/2015 Pictures/2015
        cloud-backup sync ./scans Backup/scans --dry-run
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        with make_client(ctx) as client:
            engine_out = OutputFormatter(
                json_output=out.json_output,
                quiet=no_progress or out.quiet or out.json_output,
            )
            engine = SyncEngine(client, engine_out)
            stats = engine.sync(
                local_path, normalize_remote_path(remote_path), dry_run=dry_run
            )
    except KeyboardInterrupt:
        out.warning("\nSync cancelled by user")
        ctx.exit(130)
        return
    except ValueError as e:
        out.error(str(e))
        ctx.exit(1)
        return
    except CloudBackupError as e:
        report_sync_error(out, e)
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json(stats)


if __name__ == "__main__":
    main()
