"""OAuth2 authorization against the Microsoft account endpoints.

Tokens are cached per (client id, client secret, scopes) tuple in the
user's cache directory so that the browser round trip is only needed once.
Expired access tokens are renewed with the cached refresh token.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from typing import Any, Callable
from urllib.parse import parse_qs, quote, urlencode, urlparse

import httpx

from .config import config
from .exceptions import AuthenticationError, ConfigError, NetworkError

logger = logging.getLogger(__name__)

# Seconds before the real expiry at which a token is considered stale
EXPIRY_LEEWAY: float = 60.0

# Seconds to wait for the browser to come back to the redirect listener
DEFAULT_REDIRECT_TIMEOUT: float = 300.0


@dataclass
class ClientSecrets:
    """OAuth client credentials of an installed application."""

    client_id: str
    client_secret: str
    auth_uri: str
    token_uri: str

    @classmethod
    def from_file(cls, filename: str | Path) -> ClientSecrets:
        """Load client secrets from a JSON file.

        The file has the layout ``{"installed": {"client_id": ...,
        "client_secret": ..., "auth_uri": ..., "token_uri": ...}}``.

        Raises:
            ConfigError: If the file cannot be read or decoded
        """
        path = Path(filename).expanduser()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigError(f"Error reading {str(path)!r}: {e}") from e
        except ValueError as e:
            raise ConfigError(f"Could not decode client credentials: {e}") from e

        installed = data.get("installed") if isinstance(data, dict) else None
        if not isinstance(installed, dict):
            raise ConfigError(
                f"Client secrets in {str(path)!r} lack an 'installed' section"
            )
        missing = [
            key
            for key in ("client_id", "client_secret", "auth_uri", "token_uri")
            if not installed.get(key)
        ]
        if missing:
            raise ConfigError(f"Client secrets missing fields: {', '.join(missing)}")

        return cls(
            client_id=installed["client_id"],
            client_secret=installed["client_secret"],
            auth_uri=installed["auth_uri"],
            token_uri=installed["token_uri"],
        )


@dataclass
class Token:
    """An OAuth2 bearer token."""

    access_token: str
    refresh_token: str = ""
    token_type: str = "bearer"
    expiry: float | None = None
    """Unix timestamp at which the access token expires"""

    def is_expired(self, now: float | None = None) -> bool:
        """Check whether the access token is (about to be) expired."""
        if self.expiry is None:
            return False
        now = time.time() if now is None else now
        return now >= self.expiry - EXPIRY_LEEWAY

    @classmethod
    def from_token_response(
        cls, data: dict[str, Any], now: float | None = None
    ) -> Token:
        """Create a Token from a token endpoint response."""
        access_token = data.get("access_token")
        if not access_token:
            raise AuthenticationError("Token response did not contain an access token")
        now = time.time() if now is None else now
        expires_in = data.get("expires_in")
        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token", ""),
            token_type=data.get("token_type", "bearer"),
            expiry=now + float(expires_in) if expires_in else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert token to dictionary for JSON serialization."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expiry": self.expiry,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Token:
        """Create Token from dictionary."""
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token", ""),
            token_type=data.get("token_type", "bearer"),
            expiry=data.get("expiry"),
        )


# =========================
# Token cache
# =========================


def fnv32a(data: bytes, seed: int = 0x811C9DC5) -> int:
    """Compute the 32-bit FNV-1a hash of ``data``.

    Examples:
        >>> fnv32a(b"")
        2166136261
        >>> fnv32a(b"a")
        3826002220
    """
    value = seed
    for byte in data:
        value ^= byte
        value = (value * 0x01000193) & 0xFFFFFFFF
    return value


def user_cache_dir() -> Path:
    """Return the directory used for cached OAuth tokens."""
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches"
    if sys.platform.startswith(("linux", "freebsd")):
        return Path(os.environ.get("XDG_CACHE_HOME") or Path.home() / ".cache")
    local_app_data = os.environ.get("LOCALAPPDATA")
    if local_app_data:
        return Path(local_app_data)
    logger.debug("No cache directory known for platform %s", sys.platform)
    return Path(".")


def token_cache_filename(
    app_name: str,
    secrets: ClientSecrets,
    scopes: list[str],
    cache_dir: Path | None = None,
) -> Path:
    """Return the token cache file for a given OAuth configuration."""
    value = fnv32a(secrets.client_id.encode("utf-8"))
    value = fnv32a(secrets.client_secret.encode("utf-8"), value)
    value = fnv32a(",".join(scopes).encode("utf-8"), value)
    filename = quote(f"{app_name}-token{value}", safe="")
    return (cache_dir or user_cache_dir()) / filename


def load_token(path: Path) -> Token | None:
    """Load a cached token, returning None if there is no usable cache."""
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            return Token.from_dict(json.load(f))
    except (OSError, ValueError, KeyError) as e:
        logger.warning("Ignoring unreadable token cache %s: %s", path, e)
        return None


def save_token(path: Path, token: Token) -> None:
    """Store a token in the cache file.

    Failing to write the cache is not fatal; the user simply has to
    authorize again next time.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(token.to_dict(), f)
        path.chmod(0o600)
    except OSError as e:
        logger.warning("Failed to cache oauth token: %s", e)


def extract_code(response: str, expected_state: str | None = None) -> str:
    """Extract the authorization code from user input.

    Accepts either the bare code or the full redirect URL that the browser
    ended up on.

    Raises:
        AuthenticationError: If no code is present or the state differs
    """
    response = response.strip()
    if "://" not in response and "code=" not in response:
        if not response:
            raise AuthenticationError("No authorization code given")
        return response

    query = urlparse(response).query if "://" in response else response.lstrip("?")
    params = parse_qs(query)
    if expected_state is not None and params.get("state", [None])[0] != expected_state:
        raise AuthenticationError("Authorization state does not match")
    code = params.get("code", [None])[0]
    if not code:
        raise AuthenticationError("Redirect URL does not contain an authorization code")
    return code


def redirect_uri_with_port(uri: str, port: int) -> str:
    """Return ``uri`` with its port replaced.

    Examples:
        >>> redirect_uri_with_port("http://localtest.me:31337/", 8080)
        'http://localtest.me:8080/'
    """
    parsed = urlparse(uri)
    return parsed._replace(netloc=f"{parsed.hostname}:{port}").geturl()


# =========================
# Redirect listener
# =========================


class _RedirectHandler(BaseHTTPRequestHandler):
    """Receives the browser redirect carrying the authorization code."""

    server: RedirectListener

    def do_GET(self) -> None:
        url = urlparse(self.path)
        if url.path == "/favicon.ico":
            self.send_error(404)
            return

        params = parse_qs(url.query)
        if params.get("state", [None])[0] != self.server.state:
            logger.warning("State doesn't match in redirect: %s", self.path)
            self.send_error(500, "State doesn't match")
            return

        code = params.get("code", [None])[0]
        if not code:
            logger.warning("No code in redirect: %s", self.path)
            self.send_error(500, "No authorization code")
            return

        body = b"<h1>Success</h1>Authorized."
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)
        self.server.code = code

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("Redirect listener: " + format, *args)


class RedirectListener(HTTPServer):
    """Local HTTP server the OAuth redirect URI points at.

    Requests with a wrong ``state`` or without a code are answered with an
    error and the listener keeps waiting.

    Examples:
        >>> with RedirectListener(state, port=31337) as listener:
        ...     code = listener.wait_for_code(timeout=300)
    """

    # Binding fails if another process already listens on the port
    allow_reuse_port = False

    def __init__(self, state: str, port: int = 0, host: str = "127.0.0.1"):
        super().__init__((host, port), _RedirectHandler)
        self.state = state
        self.code: str | None = None

    @property
    def port(self) -> int:
        return self.server_address[1]

    def wait_for_code(self, timeout: float | None = None) -> str:
        """Serve requests until one carries the authorization code.

        Raises:
            AuthenticationError: If no code arrives within ``timeout`` seconds
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while self.code is None:
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise AuthenticationError(
                        "Timed out waiting for the authorization redirect"
                    )
                self.timeout = remaining
            self.handle_request()
        return self.code


class OAuthSession:
    """Obtains and renews access tokens for the OneDrive API."""

    def __init__(
        self,
        secrets: ClientSecrets,
        scopes: list[str] | None = None,
        redirect_uri: str | None = None,
        app_name: str | None = None,
        cache_dir: Path | None = None,
        http_client: httpx.Client | None = None,
    ):
        """Initialize the OAuth session.

        Args:
            secrets: Client credentials
            scopes: Requested scopes (uses config if not provided)
            redirect_uri: Redirect URI (uses config if not provided)
            app_name: Application name used in the cache file name
            cache_dir: Directory for the token cache (defaults to the user
                cache directory)
            http_client: Optional httpx client for token requests
        """
        self.secrets = secrets
        self.scopes = scopes or list(config.scopes)
        self.redirect_uri = redirect_uri or config.redirect_uri
        self.app_name = app_name or config.app_name
        self.cache_file = token_cache_filename(
            self.app_name, secrets, self.scopes, cache_dir
        )
        self._http = http_client or httpx.Client(timeout=httpx.Timeout(30.0))
        self._token: Token | None = None

    @classmethod
    def from_secret_file(cls, filename: str | None = None, **kwargs: Any) -> OAuthSession:
        """Create a session from a client secrets file."""
        return cls(ClientSecrets.from_file(filename or config.secret_file), **kwargs)

    def new_state(self) -> str:
        """Create an opaque state value for an authorization request."""
        return f"st{time.time_ns()}"

    def authorization_url(self, state: str) -> str:
        """Return the URL the user has to visit to authorize the app."""
        params = {
            "client_id": self.secrets.client_id,
            "scope": " ".join(self.scopes),
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "state": state,
        }
        separator = "&" if "?" in self.secrets.auth_uri else "?"
        return f"{self.secrets.auth_uri}{separator}{urlencode(params)}"

    def _token_request(self, data: dict[str, str]) -> Token:
        """POST to the token endpoint and parse the response."""
        payload = {
            "client_id": self.secrets.client_id,
            "client_secret": self.secrets.client_secret,
            "redirect_uri": self.redirect_uri,
            **data,
        }
        try:
            response = self._http.post(self.secrets.token_uri, data=payload)
        except httpx.RequestError as e:
            raise NetworkError(f"Network error: {e}") from e

        if response.status_code >= 400:
            detail = ""
            try:
                body = response.json()
                if isinstance(body, dict):
                    detail = body.get("error_description") or body.get("error") or ""
            except ValueError:
                pass
            message = f"Token request failed with status {response.status_code}"
            raise AuthenticationError(f"{message}: {detail}" if detail else message)

        try:
            return Token.from_token_response(response.json())
        except ValueError as e:
            raise AuthenticationError("Invalid token response") from e

    def exchange_code(self, code: str) -> Token:
        """Exchange an authorization code for a token and cache it."""
        token = self._token_request({"grant_type": "authorization_code", "code": code})
        self._store(token)
        return token

    def refresh(self, token: Token) -> Token:
        """Renew an access token using its refresh token and cache it."""
        if not token.refresh_token:
            raise AuthenticationError("Token expired and no refresh token is available")
        logger.debug("Refreshing access token")
        renewed = self._token_request(
            {"grant_type": "refresh_token", "refresh_token": token.refresh_token}
        )
        if not renewed.refresh_token:
            renewed.refresh_token = token.refresh_token
        self._store(renewed)
        return renewed

    def _store(self, token: Token) -> None:
        self._token = token
        save_token(self.cache_file, token)

    def authorize(self, prompt: Callable[[str], str]) -> Token:
        """Run the interactive authorization flow.

        Args:
            prompt: Called with the authorization URL; returns the code or
                the redirect URL the browser landed on

        Returns:
            The new token
        """
        state = self.new_state()
        response = prompt(self.authorization_url(state))
        return self.exchange_code(extract_code(response, expected_state=state))

    def authorize_via_redirect(
        self,
        open_browser: Callable[[str], Any],
        port: int | None = None,
        timeout: float | None = DEFAULT_REDIRECT_TIMEOUT,
    ) -> Token:
        """Run the authorization flow, capturing the code on a local listener.

        Args:
            open_browser: Called with the authorization URL once the
                listener is accepting connections
            port: Port to listen on; overrides the port of the redirect
                URI (default: the redirect URI's port)
            timeout: Seconds to wait for the redirect

        Returns:
            The new token

        Raises:
            AuthenticationError: If the port cannot be bound or no code
                arrives in time
        """
        if port is None:
            port = urlparse(self.redirect_uri).port or 80
        state = self.new_state()
        try:
            listener = RedirectListener(state, port)
        except OSError as e:
            raise AuthenticationError(
                f"Could not listen on port {port} for the redirect: {e}"
            ) from e

        with listener:
            self.redirect_uri = redirect_uri_with_port(self.redirect_uri, listener.port)
            open_browser(self.authorization_url(state))
            code = listener.wait_for_code(timeout)
        logger.debug("Got authorization code from redirect")
        return self.exchange_code(code)

    def get_token(self, prompt: Callable[[str], str] | None = None) -> Token:
        """Return a valid token, from memory, the cache, or a new authorization.

        Args:
            prompt: Interactive prompt used when no cached token exists

        Raises:
            AuthenticationError: If no token is cached and no prompt is given
        """
        token = self._token
        if token is None:
            token = load_token(self.cache_file)
            if token is not None:
                logger.debug("Using cached token from %s", self.cache_file)
                self._token = token

        if token is None:
            if prompt is None:
                raise AuthenticationError(
                    "Not authorized. Run 'cloud-backup auth' first."
                )
            return self.authorize(prompt)

        if token.is_expired():
            return self.refresh(token)
        return token

    def access_token(self) -> str:
        """Return a valid access token without prompting."""
        return self.get_token().access_token

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._http.close()
