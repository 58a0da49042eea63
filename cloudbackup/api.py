"""API client for OneDrive."""

from __future__ import annotations

import logging
import random
import time
from pathlib import Path
from typing import Any, Callable, Iterator
from urllib.parse import quote

import httpx

from .config import config
from .exceptions import (
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
from .models import ChildrenPage, Drive, Item
from .utils import UPLOAD_CHUNK_SIZE, normalize_remote_path, split_remote_path

logger = logging.getLogger(__name__)


class OneDriveClient:
    """Client for interacting with the OneDrive REST API."""

    def __init__(
        self,
        access_token: str | None = None,
        token_provider: Callable[[], str] | None = None,
        api_url: str | None = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
    ):
        """Initialize OneDrive API client.

        Args:
            access_token: Static bearer token
            token_provider: Callable returning a fresh bearer token; used
                for every request when given (e.g. ``OAuthSession.access_token``)
            api_url: Optional API URL (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
        """
        if not access_token and token_provider is None:
            raise ConfigError(
                "No access token available. Run 'cloud-backup auth' first."
            )
        self.access_token = access_token
        self.token_provider = token_provider
        self.api_url = (api_url or config.api_url).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        self._client: httpx.Client | None = None

    def __enter__(self) -> OneDriveClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def _auth_headers(self) -> dict[str, str]:
        token = self.token_provider() if self.token_provider else self.access_token
        return {"Authorization": f"Bearer {token}"}

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.api_url}/{endpoint.lstrip('/')}"

    @staticmethod
    def _item_endpoint(path: str, suffix: str = "") -> str:
        """Build a path-addressed item endpoint.

        Examples:
            >>> OneDriveClient._item_endpoint("Pictures/2015", "children")
            '/drive/root:/Pictures/2015:/children'
            >>> OneDriveClient._item_endpoint("/", "children")
            '/drive/root/children'
        """
        path = normalize_remote_path(path)
        if not path:
            return f"/drive/root/{suffix}" if suffix else "/drive/root"
        endpoint = f"/drive/root:/{quote(path, safe='/')}"
        return f"{endpoint}:/{suffix}" if suffix else endpoint

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False

        # Transient failures
        if isinstance(exception, (NetworkError, RateLimitError)):
            return True

        if isinstance(exception, httpx.HTTPStatusError):
            return 500 <= exception.response.status_code < 600

        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Jitter of +/- 25%
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[Exception, bool]:
        """Handle HTTP errors and determine if retry should occur.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code

        if status_code == 401:
            raise AuthenticationError(
                "Invalid or expired access token - run 'cloud-backup auth'"
            ) from e
        elif status_code == 403:
            raise PermissionDeniedError(
                "Access forbidden - check your permissions"
            ) from e
        elif status_code == 404:
            raise NotFoundError("Path not found") from e
        elif status_code == 429:
            error = RateLimitError("Rate limit exceeded - please try again later")
            return (error, attempt < self.max_retries)

        error_msg = f"API request failed with status {status_code}"
        try:
            if e.response.content:
                error_data = e.response.json()
                if isinstance(error_data, dict):
                    # OneDrive wraps errors as {"error": {"code", "message"}}
                    detail = error_data.get("error")
                    if isinstance(detail, dict):
                        detail = detail.get("message") or detail.get("code")
                    msg = detail or error_data.get("message")
                    if msg:
                        error_msg = f"{error_msg}: {msg}"
        except ValueError:
            pass

        should_retry = 500 <= status_code < 600 and attempt < self.max_retries
        return (APIError(error_msg), should_retry)

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            endpoint: API endpoint path or absolute URL (e.g. a next link)
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data

        Raises:
            APIError: If the request fails after all retries
        """
        url = self._url(endpoint)
        last_exception: Exception | None = None
        client = self._get_client()
        extra_headers = kwargs.pop("headers", {})

        for attempt in range(self.max_retries + 1):
            try:
                headers = {**self._auth_headers(), **extra_headers}
                response = client.request(method, url, headers=headers, **kwargs)
                response.raise_for_status()

                content_type = response.headers.get("Content-Type", "")
                if response.content and "application/json" not in content_type:
                    if "text/html" in content_type:
                        raise AuthenticationError(
                            "Server returned HTML instead of JSON - "
                            "check your access token"
                        )
                    raise InvalidResponseError(
                        f"Unexpected response type: {content_type}"
                    )

                if response.content:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise InvalidResponseError(
                            "Invalid JSON response from server"
                        ) from e
                return {}

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error

                if should_retry:
                    retry_after = e.response.headers.get("Retry-After")
                    if (
                        isinstance(error, RateLimitError)
                        and retry_after
                        and retry_after.isdigit()
                    ):
                        delay = float(retry_after)
                    else:
                        delay = self._calculate_retry_delay(attempt)
                    logger.debug(
                        "%s %s failed (%s), retrying in %.1fs",
                        method,
                        url,
                        error,
                        delay,
                    )
                    time.sleep(delay)
                    continue
                raise error from e
            except APIError:
                raise
            except httpx.RequestError as e:
                error = NetworkError(f"Network error: {e}")
                last_exception = error
                if self._should_retry(error, attempt):
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug("Network error on %s, retrying in %.1fs", url, delay)
                    time.sleep(delay)
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise APIError("Request failed after all retry attempts")

    # =========================
    # Drive Operations
    # =========================

    def get_drive(self) -> Drive:
        """Get the default drive with owner and quota information."""
        return Drive.from_api_response(self._request("GET", "/drive"))

    def get_metadata(self, path: str) -> Item:
        """Get metadata of the item at ``path``.

        Args:
            path: Remote path relative to the drive root

        Raises:
            NotFoundError: If nothing exists at the path
        """
        data = self._request(
            "GET",
            self._item_endpoint(path),
            params={"select": "id,name,folder,file,size"},
        )
        return Item.from_dict(data)

    def iter_children(self, path: str) -> Iterator[ChildrenPage]:
        """Iterate over all pages of a folder listing.

        Follows ``@odata.nextLink`` until the last page.

        Args:
            path: Remote folder path relative to the drive root

        Raises:
            NotFoundError: If the folder does not exist
        """
        page = ChildrenPage.from_api_response(
            self._request(
                "GET",
                self._item_endpoint(path, "children"),
                params={"select": "id,name,folder,file,size"},
            )
        )
        count = len(page.items)
        yield page

        while page.next_link:
            logger.debug(
                "Collected %d results, fetching next page: %s", count, page.next_link
            )
            page = ChildrenPage.from_api_response(
                self._request("GET", page.next_link)
            )
            count += len(page.items)
            yield page

    def list_children(self, path: str) -> list[Item]:
        """Get all children of a folder."""
        items: list[Item] = []
        for page in self.iter_children(path):
            items.extend(page.items)
        return items

    def create_folder(self, parent: str, name: str) -> Item:
        """Create a folder ``name`` inside ``parent``.

        Args:
            parent: Remote path of the parent folder ("" for the root)
            name: Name of the new folder

        Returns:
            The created folder item
        """
        payload = {"name": name, "folder": {}}
        data = self._request(
            "POST", self._item_endpoint(parent, "children"), json=payload
        )
        logger.debug("Created folder %s in %r", name, parent or "/")
        return Item.from_dict(data)

    def create_folder_at(self, path: str) -> Item:
        """Create the folder at ``path`` under its parent."""
        parent, name = split_remote_path(path)
        if not name:
            raise APIError("Cannot create the drive root")
        return self.create_folder(parent, name)

    # =========================
    # Upload Operations
    # =========================

    def upload_file(
        self,
        file_path: Path,
        remote_path: str,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> Item:
        """Upload a local file, replacing whatever is at ``remote_path``.

        Args:
            file_path: Local path to the file
            remote_path: Remote destination path including the file name
            progress_callback: Optional callback function(bytes_uploaded,
                total_bytes)

        Returns:
            The uploaded item

        Raises:
            UploadError: If the upload fails
            FileNotFoundLocalError: If the local file doesn't exist
        """
        if not file_path.is_file():
            raise FileNotFoundLocalError(str(file_path))

        file_size = file_path.stat().st_size

        def file_reader() -> Iterator[bytes]:
            bytes_uploaded = 0
            with open(file_path, "rb") as f:
                while True:
                    chunk = f.read(UPLOAD_CHUNK_SIZE)
                    if not chunk:
                        break
                    bytes_uploaded += len(chunk)
                    if progress_callback:
                        progress_callback(bytes_uploaded, file_size)
                    yield chunk

        headers = {
            **self._auth_headers(),
            "Content-Type": "application/octet-stream",
            "Content-Length": str(file_size),
        }
        url = self._url(self._item_endpoint(remote_path, "content"))
        start = time.time()

        try:
            response = self._get_client().put(
                url, content=file_reader(), headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 401:
                raise AuthenticationError(
                    "Invalid or expired access token - run 'cloud-backup auth'"
                ) from e
            raise UploadError(f"Upload of {file_path.name} failed: {e}") from e
        except httpx.RequestError as e:
            raise UploadError(f"Network error during upload: {e}") from e
        except OSError as e:
            raise UploadError(f"Could not read {file_path.name} for upload: {e}") from e

        logger.debug(
            "Uploaded %s (%d bytes) in %.2fs", remote_path, file_size, time.time() - start
        )
        try:
            return Item.from_dict(response.json())
        except ValueError as e:
            raise InvalidResponseError("Invalid JSON response after upload") from e
