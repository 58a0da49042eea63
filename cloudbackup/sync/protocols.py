"""Protocols for the folder listing backends used by the reconciler."""

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .scanner import HashedFile


@runtime_checkable
class ListingProvider(Protocol):
    """Anything that can list the files of a single folder with their hashes.

    Implementations must not recurse into subfolders and must leave out
    folders and hidden entries (names starting with a dot). The returned
    list may be in any order.
    """

    def list_files(self, path: str) -> "list[HashedFile]":
        """List the files directly inside ``path``."""
        ...


@runtime_checkable
class RemoteListingProvider(ListingProvider, Protocol):
    """A listing provider that can also create the folder it lists."""

    def ensure_folder(self, path: str) -> None:
        """Create ``path`` unless it already exists as a folder."""
        ...
