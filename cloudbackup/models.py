"""Data models for OneDrive API responses."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class Quota:
    """Storage quota of a drive."""

    total: int = 0
    used: int = 0
    remaining: int = 0
    deleted: int = 0
    state: str = "normal"
    """normal | nearing | critical | exceeded"""

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "Quota":
        """Create Quota from API response data."""
        data = data or {}
        return cls(
            total=int(data.get("total", 0)),
            used=int(data.get("used", 0)),
            remaining=int(data.get("remaining", 0)),
            deleted=int(data.get("deleted", 0)),
            state=data.get("state", "normal"),
        )


@dataclass
class Drive:
    """A OneDrive drive."""

    id: str
    drive_type: str
    owner_name: str
    quota: Quota

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "Drive":
        """Create Drive from the /drive response."""
        owner = data.get("owner") or {}
        user = owner.get("user") or {}
        return cls(
            id=data.get("id", ""),
            drive_type=data.get("driveType", ""),
            owner_name=user.get("displayName", ""),
            quota=Quota.from_dict(data.get("quota")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "id": self.id,
            "drive_type": self.drive_type,
            "owner": self.owner_name,
            "quota": {
                "total": self.quota.total,
                "used": self.quota.used,
                "remaining": self.quota.remaining,
                "deleted": self.quota.deleted,
                "state": self.quota.state,
            },
        }


@dataclass
class Item:
    """A file or folder in OneDrive.

    Exactly one of the ``file`` and ``folder`` facets is set for a
    regular item.
    """

    id: str
    name: str
    size: int = 0
    is_folder: bool = False
    child_count: int = 0
    sha1_hash: str = ""
    crc32_hash: str = ""
    mime_type: str = ""

    @property
    def is_file(self) -> bool:
        """Whether this item carries the file facet."""
        return not self.is_folder

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Item":
        """Create Item from a single API item."""
        folder = data.get("folder")
        file_facet = data.get("file") or {}
        hashes = file_facet.get("hashes") or {}
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            size=int(data.get("size", 0) or 0),
            is_folder=folder is not None,
            child_count=int((folder or {}).get("childCount", 0) or 0),
            sha1_hash=(hashes.get("sha1Hash") or "").lower(),
            crc32_hash=(hashes.get("crc32Hash") or "").lower(),
            mime_type=file_facet.get("mimeType", ""),
        )


@dataclass
class ChildrenPage:
    """One page of a children listing."""

    items: list[Item] = field(default_factory=list)
    next_link: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ChildrenPage":
        """Create ChildrenPage from a children/view response."""
        return cls(
            items=[Item.from_dict(value) for value in data.get("value") or []],
            next_link=data.get("@odata.nextLink") or None,
        )
