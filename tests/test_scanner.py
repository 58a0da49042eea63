"""Tests for the local and remote listing providers."""

import hashlib
from unittest.mock import Mock

import pytest

from cloudbackup.api import OneDriveClient
from cloudbackup.exceptions import (
    APIError,
    CreateError,
    ListError,
    NotFoundError,
    PermissionDeniedError,
)
from cloudbackup.models import Item
from cloudbackup.sync.protocols import ListingProvider, RemoteListingProvider
from cloudbackup.sync.scanner import (
    HashedFile,
    LocalFilesystem,
    OneDriveFilesystem,
    ReadOnlyOneDriveFilesystem,
)


class TestLocalFilesystem:
    """Tests for LocalFilesystem."""

    def test_lists_and_hashes_files(self, tmp_path):
        """Every regular file is listed with its SHA-1 digest."""
        (tmp_path / "foo").write_bytes(b"contents:foo")
        (tmp_path / "bar").write_bytes(b"contents:bar")

        files = LocalFilesystem().list_files(str(tmp_path))

        assert sorted(files, key=lambda f: f.filename) == [
            HashedFile(
                str(tmp_path), "bar", hashlib.sha1(b"contents:bar").hexdigest()
            ),
            HashedFile(
                str(tmp_path), "foo", hashlib.sha1(b"contents:foo").hexdigest()
            ),
        ]

    def test_custom_hash_factory(self, tmp_path):
        """A different hash algorithm can be plugged in."""
        (tmp_path / "foo").write_bytes(b"contents:foo")

        files = LocalFilesystem(hashlib.md5).list_files(str(tmp_path))

        assert files[0].hash == "5172373545499a04bc8a03681dc9ab55"

    def test_ignores_hidden_files(self, tmp_path):
        """Names starting with a dot are skipped."""
        (tmp_path / ".hidden").write_text("secret")
        (tmp_path / "foo").write_text("foo")
        (tmp_path / "bar").write_text("bar")

        files = LocalFilesystem().list_files(str(tmp_path))

        assert len(files) == 2
        assert ".hidden" not in [f.filename for f in files]

    def test_does_not_recurse(self, tmp_path):
        """Subdirectories and their contents are skipped."""
        subdir = tmp_path / "subdir"
        subdir.mkdir()
        (subdir / "nested").write_text("nested")
        (tmp_path / "foo").write_text("foo")

        files = LocalFilesystem().list_files(str(tmp_path))

        assert [f.filename for f in files] == ["foo"]

    def test_large_file_hashed_in_chunks(self, tmp_path):
        """Files larger than the read size hash to the full digest."""
        data = b"x" * (3 * 1024 * 1024 + 17)
        (tmp_path / "big.bin").write_bytes(data)

        files = LocalFilesystem().list_files(str(tmp_path))

        assert files[0].hash == hashlib.sha1(data).hexdigest()

    def test_empty_file_has_hash(self, tmp_path):
        """An empty file still gets a non-empty digest."""
        (tmp_path / "empty").write_bytes(b"")

        files = LocalFilesystem().list_files(str(tmp_path))

        assert files[0].hash == hashlib.sha1(b"").hexdigest()

    def test_missing_folder_raises(self, tmp_path):
        """A missing folder is a listing error."""
        with pytest.raises(ListError, match="does not exist"):
            LocalFilesystem().list_files(str(tmp_path / "missing"))

    def test_unreadable_file_raises(self, tmp_path):
        """Hashing failures surface as ListError."""
        (tmp_path / "foo").write_text("foo")

        def broken_factory():
            raise OSError("read error")

        with pytest.raises(ListError, match="read error"):
            LocalFilesystem(broken_factory).list_files(str(tmp_path))

    def test_hash_file_rejects_directories(self, tmp_path):
        """hash_file refuses to hash a directory."""
        with pytest.raises(IsADirectoryError):
            LocalFilesystem().hash_file(tmp_path)

    def test_is_a_listing_provider(self):
        """LocalFilesystem lists but cannot create folders."""
        fs = LocalFilesystem()
        assert isinstance(fs, ListingProvider)
        assert not isinstance(fs, RemoteListingProvider)


class TestOneDriveFilesystem:
    """Tests for OneDriveFilesystem."""

    @pytest.fixture
    def mock_client(self):
        """Create a mock OneDrive client."""
        return Mock(spec=OneDriveClient)

    def _file(self, name: str, sha1: str = "ABCDEF") -> Item:
        return Item(id=name, name=name, sha1_hash=sha1.lower())

    def _folder(self, name: str) -> Item:
        return Item(id=name, name=name, is_folder=True)

    def test_list_files(self, mock_client):
        """Files are returned with their hashes, folders are skipped."""
        mock_client.list_children.return_value = [
            self._file("a.jpg", "AAAA"),
            self._folder("sub"),
            self._file("b.jpg", "bbbb"),
            self._file(".hidden"),
        ]

        files = OneDriveFilesystem(mock_client).list_files("/Pictures/2015/")

        mock_client.list_children.assert_called_once_with("Pictures/2015")
        assert files == [
            HashedFile("Pictures/2015", "a.jpg", "aaaa"),
            HashedFile("Pictures/2015", "b.jpg", "bbbb"),
        ]

    def test_file_without_hash(self, mock_client):
        """Files the server reports without a hash get an empty hash."""
        mock_client.list_children.return_value = [self._file("a.jpg", "")]

        files = OneDriveFilesystem(mock_client).list_files("Pictures")

        assert files[0].hash == ""

    def test_missing_folder_raises(self, mock_client):
        """A missing remote folder is a listing error."""
        mock_client.list_children.side_effect = NotFoundError("Path not found")

        with pytest.raises(ListError, match="does not exist"):
            OneDriveFilesystem(mock_client).list_files("Pictures")

    def test_other_api_errors_propagate(self, mock_client):
        """Other API errors are passed through unchanged."""
        mock_client.list_children.side_effect = PermissionDeniedError("forbidden")

        with pytest.raises(PermissionDeniedError):
            OneDriveFilesystem(mock_client).list_files("Pictures")

    def test_ensure_folder_exists(self, mock_client):
        """An existing folder is left alone."""
        mock_client.get_metadata.return_value = self._folder("2015")

        OneDriveFilesystem(mock_client).ensure_folder("Pictures/2015")

        mock_client.get_metadata.assert_called_once_with("Pictures/2015")
        mock_client.create_folder_at.assert_not_called()

    def test_ensure_folder_creates_missing(self, mock_client):
        """A missing folder is created."""
        mock_client.get_metadata.side_effect = NotFoundError("Path not found")
        mock_client.create_folder_at.return_value = self._folder("2015")

        OneDriveFilesystem(mock_client).ensure_folder("/Pictures/2015")

        mock_client.create_folder_at.assert_called_once_with("Pictures/2015")

    def test_ensure_folder_rejects_file(self, mock_client):
        """A file in place of the folder is an error."""
        mock_client.get_metadata.return_value = self._file("2015")

        with pytest.raises(CreateError, match="not a folder"):
            OneDriveFilesystem(mock_client).ensure_folder("Pictures/2015")

    def test_ensure_folder_creation_fails(self, mock_client):
        """API errors while creating are wrapped in CreateError."""
        mock_client.get_metadata.side_effect = NotFoundError("Path not found")
        mock_client.create_folder_at.side_effect = APIError("boom")

        with pytest.raises(CreateError, match="boom"):
            OneDriveFilesystem(mock_client).ensure_folder("Pictures/2015")

    def test_ensure_folder_root(self, mock_client):
        """The drive root always exists."""
        OneDriveFilesystem(mock_client).ensure_folder("/")

        mock_client.get_metadata.assert_not_called()

    def test_is_a_remote_listing_provider(self, mock_client):
        """OneDriveFilesystem can create folders."""
        assert isinstance(OneDriveFilesystem(mock_client), RemoteListingProvider)


class TestReadOnlyOneDriveFilesystem:
    """Tests for ReadOnlyOneDriveFilesystem."""

    @pytest.fixture
    def mock_client(self):
        """Create a mock OneDrive client."""
        return Mock(spec=OneDriveClient)

    def test_list_files(self, mock_client):
        """Files are listed like OneDriveFilesystem does."""
        mock_client.list_children.return_value = [
            Item(id="a", name="a.jpg", sha1_hash="aaaa"),
            Item(id="s", name="sub", is_folder=True),
        ]

        files = ReadOnlyOneDriveFilesystem(mock_client).list_files("/Pictures/")

        assert files == [HashedFile("Pictures", "a.jpg", "aaaa")]

    def test_missing_folder_lists_empty(self, mock_client):
        """A missing folder is treated as empty and not created."""
        mock_client.list_children.side_effect = NotFoundError("Path not found")

        assert ReadOnlyOneDriveFilesystem(mock_client).list_files("new") == []
        mock_client.create_folder_at.assert_not_called()

    def test_other_api_errors_propagate(self, mock_client):
        """Errors other than a missing folder are passed through."""
        mock_client.list_children.side_effect = PermissionDeniedError("forbidden")

        with pytest.raises(PermissionDeniedError):
            ReadOnlyOneDriveFilesystem(mock_client).list_files("Pictures")

    def test_cannot_create_folders(self, mock_client):
        """The reconciler never asks it to create the folder."""
        fs = ReadOnlyOneDriveFilesystem(mock_client)
        assert isinstance(fs, ListingProvider)
        assert not isinstance(fs, RemoteListingProvider)
