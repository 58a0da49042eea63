"""Unit tests for the OneDrive API client."""

import json
from unittest.mock import patch

import httpx
import pytest

from cloudbackup.api import OneDriveClient
from cloudbackup.exceptions import (
    APIError,
    AuthenticationError,
    ConfigError,
    FileNotFoundLocalError,
    InvalidResponseError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    UploadError,
)

API_URL = "https://api.test/v1.0"


def make_client(handler, **kwargs) -> OneDriveClient:
    """Create a client whose requests are answered by ``handler``."""
    client = OneDriveClient(access_token="test_token", api_url=API_URL, **kwargs)
    client._client = httpx.Client(transport=httpx.MockTransport(handler))
    return client


def json_response(data, status_code=200, headers=None) -> httpx.Response:
    return httpx.Response(status_code, json=data, headers=headers)


class TestOneDriveClient:
    """Tests for client initialization."""

    def test_init_with_access_token(self):
        """Test client initialization with an access token."""
        client = OneDriveClient(access_token="test_token")
        assert client.access_token == "test_token"
        assert client.api_url == "https://api.onedrive.com/v1.0"

    def test_init_without_token_raises_error(self):
        """Test that initializing without any token raises error."""
        with pytest.raises(ConfigError, match="No access token"):
            OneDriveClient()

    def test_token_provider_used_per_request(self):
        """The token provider is asked for a token on every request."""
        tokens = iter(["first", "second"])
        seen = []

        def handler(request):
            seen.append(request.headers["Authorization"])
            return json_response({})

        client = OneDriveClient(token_provider=lambda: next(tokens), api_url=API_URL)
        client._client = httpx.Client(transport=httpx.MockTransport(handler))
        client._request("GET", "/drive")
        client._request("GET", "/drive")

        assert seen == ["Bearer first", "Bearer second"]

    def test_item_endpoint(self):
        """Paths are quoted and the root has its own endpoint."""
        assert (
            OneDriveClient._item_endpoint("My Pictures/2015")
            == "/drive/root:/My%20Pictures/2015"
        )
        assert OneDriveClient._item_endpoint("") == "/drive/root"
        assert (
            OneDriveClient._item_endpoint("", "children") == "/drive/root/children"
        )

    def test_context_manager_closes(self):
        """Leaving the context closes the HTTP client."""
        client = make_client(lambda request: json_response({}))
        with client:
            pass
        assert client._client is None


class TestAPIRequest:
    """Tests for the _request method."""

    def test_successful_json_response(self):
        """Test successful API request with JSON response."""
        client = make_client(lambda request: json_response({"data": "test"}))

        assert client._request("GET", "/test") == {"data": "test"}

    def test_empty_response(self):
        """Test handling of empty response."""
        client = make_client(lambda request: httpx.Response(204))

        assert client._request("GET", "/test") == {}

    def test_html_response_raises_error(self):
        """Test that HTML response raises appropriate error."""
        client = make_client(
            lambda request: httpx.Response(
                200, content=b"<html>Error</html>", headers={"Content-Type": "text/html"}
            )
        )

        with pytest.raises(AuthenticationError, match="HTML instead of JSON"):
            client._request("GET", "/test")

    def test_unexpected_content_type(self):
        """Non-JSON, non-HTML bodies are invalid responses."""
        client = make_client(
            lambda request: httpx.Response(
                200, content=b"plain", headers={"Content-Type": "text/plain"}
            )
        )

        with pytest.raises(InvalidResponseError):
            client._request("GET", "/test")

    @pytest.mark.parametrize(
        "status_code,error_class",
        [
            (401, AuthenticationError),
            (403, PermissionDeniedError),
            (404, NotFoundError),
        ],
    )
    def test_client_errors_not_retried(self, status_code, error_class):
        """4xx errors map to specific exceptions without retrying."""
        calls = []

        def handler(request):
            calls.append(request)
            return json_response({"error": {"code": "x"}}, status_code)

        client = make_client(handler)
        with pytest.raises(error_class):
            client._request("GET", "/test")
        assert len(calls) == 1

    @patch("cloudbackup.api.time.sleep")
    def test_server_error_retried(self, mock_sleep):
        """5xx errors are retried with backoff."""
        responses = iter(
            [
                json_response({"error": {"message": "oops"}}, 503),
                json_response({"ok": True}),
            ]
        )
        client = make_client(lambda request: next(responses))

        assert client._request("GET", "/test") == {"ok": True}
        mock_sleep.assert_called_once()

    @patch("cloudbackup.api.time.sleep")
    def test_server_error_gives_up(self, mock_sleep):
        """Persistent 5xx errors raise after all retries."""
        calls = []

        def handler(request):
            calls.append(request)
            return json_response({"error": {"message": "oops"}}, 500)

        client = make_client(handler, max_retries=2)
        with pytest.raises(APIError, match="status 500: oops"):
            client._request("GET", "/test")
        assert len(calls) == 3
        assert mock_sleep.call_count == 2

    @patch("cloudbackup.api.time.sleep")
    def test_rate_limit_uses_retry_after(self, mock_sleep):
        """429 responses honour the Retry-After header."""
        responses = iter(
            [
                json_response({}, 429, headers={"Retry-After": "7"}),
                json_response({"ok": True}),
            ]
        )
        client = make_client(lambda request: next(responses))

        assert client._request("GET", "/test") == {"ok": True}
        mock_sleep.assert_called_once_with(7.0)

    @patch("cloudbackup.api.time.sleep")
    def test_rate_limit_exhausted(self, mock_sleep):
        """Rate limiting that never ends raises RateLimitError."""
        client = make_client(lambda request: json_response({}, 429), max_retries=1)

        with pytest.raises(RateLimitError):
            client._request("GET", "/test")

    @patch("cloudbackup.api.time.sleep")
    def test_network_error_retried(self, mock_sleep):
        """Transport errors are retried and finally raised as NetworkError."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler, max_retries=1)
        with pytest.raises(NetworkError, match="connection refused"):
            client._request("GET", "/test")
        assert mock_sleep.call_count == 1


class TestDriveOperations:
    """Tests for drive, metadata, listing and folder creation."""

    def test_get_drive(self):
        """get_drive parses owner and quota."""

        def handler(request):
            assert request.url.path == "/v1.0/drive"
            return json_response(
                {
                    "id": "d1",
                    "driveType": "personal",
                    "owner": {"user": {"displayName": "Ada", "id": "u1"}},
                    "quota": {"total": 100, "used": 40, "remaining": 60},
                }
            )

        drive = make_client(handler).get_drive()

        assert drive.owner_name == "Ada"
        assert drive.quota.remaining == 60
        assert drive.quota.total == 100

    def test_get_metadata_folder(self):
        """get_metadata addresses items by path."""

        def handler(request):
            assert request.url.raw_path.startswith(b"/v1.0/drive/root:/Pictures/2015")
            return json_response(
                {"id": "f1", "name": "2015", "folder": {"childCount": 3}}
            )

        item = make_client(handler).get_metadata("Pictures/2015")

        assert item.is_folder
        assert item.child_count == 3

    def test_get_metadata_not_found(self):
        """A 404 means the path does not exist."""
        client = make_client(lambda request: json_response({}, 404))

        with pytest.raises(NotFoundError):
            client.get_metadata("missing")

    def test_list_children_follows_next_link(self):
        """All pages of a listing are collected."""
        next_link = f"{API_URL}/drive/items/abc/children?$skiptoken=2"

        def handler(request):
            if "skiptoken" in str(request.url):
                return json_response(
                    {
                        "value": [
                            {
                                "id": "3",
                                "name": "c.jpg",
                                "file": {"hashes": {"sha1Hash": "CCCC"}},
                            }
                        ]
                    }
                )
            return json_response(
                {
                    "value": [
                        {
                            "id": "1",
                            "name": "a.jpg",
                            "file": {"hashes": {"sha1Hash": "AAAA"}},
                        },
                        {"id": "2", "name": "sub", "folder": {"childCount": 0}},
                    ],
                    "@odata.nextLink": next_link,
                }
            )

        items = make_client(handler).list_children("Pictures")

        assert [item.name for item in items] == ["a.jpg", "sub", "c.jpg"]
        assert items[0].sha1_hash == "aaaa"
        assert items[1].is_folder
        assert items[2].sha1_hash == "cccc"

    def test_create_folder(self):
        """create_folder posts the folder facet to the parent."""

        def handler(request):
            assert request.method == "POST"
            assert request.url.raw_path == b"/v1.0/drive/root:/Pictures:/children"
            assert json.loads(request.content) == {"name": "2015", "folder": {}}
            return json_response({"id": "n", "name": "2015", "folder": {}}, 201)

        item = make_client(handler).create_folder_at("Pictures/2015")

        assert item.name == "2015"
        assert item.is_folder

    def test_create_folder_in_root(self):
        """Folders directly below the root use the root children endpoint."""

        def handler(request):
            assert request.url.raw_path == b"/v1.0/drive/root/children"
            return json_response({"id": "n", "name": "Backup", "folder": {}}, 201)

        assert make_client(handler).create_folder_at("Backup").name == "Backup"


class TestUpload:
    """Tests for upload_file."""

    def test_upload_file(self, tmp_path):
        """The file body is PUT to the content endpoint."""
        local = tmp_path / "a.jpg"
        local.write_bytes(b"picture")
        progress = []

        def handler(request):
            assert request.method == "PUT"
            assert request.url.raw_path == b"/v1.0/drive/root:/Pictures/a.jpg:/content"
            assert request.headers["Content-Type"] == "application/octet-stream"
            assert request.read() == b"picture"
            return json_response(
                {"id": "1", "name": "a.jpg", "file": {"hashes": {"sha1Hash": "AB"}}},
                201,
            )

        item = make_client(handler).upload_file(
            local, "Pictures/a.jpg", progress_callback=lambda s, t: progress.append(s)
        )

        assert item.sha1_hash == "ab"
        assert progress[-1] == len(b"picture")

    def test_upload_missing_file(self, tmp_path):
        """Uploading a missing file fails before any request."""
        client = make_client(lambda request: pytest.fail("no request expected"))

        with pytest.raises(FileNotFoundLocalError):
            client.upload_file(tmp_path / "missing", "Pictures/missing")

    def test_upload_server_error(self, tmp_path):
        """HTTP errors during upload raise UploadError."""
        local = tmp_path / "a.jpg"
        local.write_bytes(b"picture")
        client = make_client(lambda request: json_response({}, 507))

        with pytest.raises(UploadError, match="a.jpg"):
            client.upload_file(local, "Pictures/a.jpg")

    def test_upload_read_error(self, tmp_path):
        """A file that cannot be read during the upload raises UploadError."""
        local = tmp_path / "a.jpg"
        local.write_bytes(b"picture")

        def handler(request):
            request.read()
            return json_response({}, 201)

        client = make_client(handler)
        with patch(
            "cloudbackup.api.open", side_effect=PermissionError("denied"), create=True
        ):
            with pytest.raises(UploadError, match="Could not read a.jpg"):
                client.upload_file(local, "Pictures/a.jpg")
