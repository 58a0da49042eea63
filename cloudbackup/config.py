"""Configuration management for cloud-backup."""

import os
from pathlib import Path
from typing import Optional

DEFAULT_API_URL = "https://api.onedrive.com/v1.0"
DEFAULT_SECRET_FILE = "client_secrets.json"
DEFAULT_REDIRECT_URI = "http://localtest.me:31337/"
DEFAULT_APP_NAME = "onedrive-sync"
DEFAULT_SCOPES = ["wl.signin", "wl.offline_access", "onedrive.readwrite"]


class Config:
    """Settings read from the environment and ~/.config/cloud-backup/config.

    Environment variables take precedence over the config file, which
    takes precedence over the built-in defaults.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = config_dir or Path.home() / ".config" / "cloud-backup"
        self.config_file = self.config_dir / "config"
        self.app_name = DEFAULT_APP_NAME
        self.scopes = list(DEFAULT_SCOPES)
        self._values: dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        """Load KEY=value pairs from the config file, if present."""
        if not self.config_file.exists():
            return
        for line in self.config_file.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            self._values[key.strip()] = value.strip()

    @property
    def secret_file(self) -> str:
        """Path of the OAuth client secrets JSON file."""
        return (
            os.environ.get("CLOUD_BACKUP_SECRET_FILE")
            or self._values.get("secret_file")
            or DEFAULT_SECRET_FILE
        )

    @property
    def api_url(self) -> str:
        """Base URL of the OneDrive API."""
        return os.environ.get("CLOUD_BACKUP_API_URL") or self._values.get(
            "api_url", DEFAULT_API_URL
        )

    @property
    def redirect_uri(self) -> str:
        """Redirect URI registered for the OAuth application."""
        return os.environ.get("CLOUD_BACKUP_REDIRECT_URI") or self._values.get(
            "redirect_uri", DEFAULT_REDIRECT_URI
        )

    def is_configured(self) -> bool:
        """Check whether a client secrets file can be found."""
        return Path(self.secret_file).expanduser().is_file()

    def get_config_path(self) -> Path:
        """Return the path of the config file."""
        return self.config_file

    def save_secret_file(self, secret_file: str) -> None:
        """Persist the location of the client secrets file.

        Args:
            secret_file: Path to the client secrets JSON file
        """
        self._values["secret_file"] = str(Path(secret_file).expanduser().resolve())
        self.config_dir.mkdir(parents=True, exist_ok=True)
        lines = [f"{key}={value}" for key, value in sorted(self._values.items())]
        self.config_file.write_text("\n".join(lines) + "\n", encoding="utf-8")
        # Restrict permissions to owner only
        self.config_file.chmod(0o600)


config = Config()
