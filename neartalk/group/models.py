"""Data models for the group blueprint."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from neartalk.constants import DEFAULT_GROUP_NAME
from neartalk.core.types import GroupDocument
from neartalk.geo.distance import as_coordinate, display_km
from neartalk.utils import group_avatar


def parse_coordinate(value: Any) -> float | None:
    """Accept numbers and numeric strings; anything else is unusable."""
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    return as_coordinate(value)


@dataclass
class GroupListing:
    """A group as shown in discovery and search lists."""

    id: str
    name: str
    avatar: str
    latitude: float
    longitude: float
    member_count: int = 0
    last_message: str = ""
    updated_at: Any = None
    distance: float | None = None
    is_joined: bool = False

    @property
    def distance_km(self) -> float | None:
        return display_km(self.distance)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["distance_km"] = self.distance_km
        return data


@dataclass
class JoinedGroup:
    """An entry of the user's "my groups" list with its unread badge."""

    id: str
    name: str
    avatar: str = ""
    member_count: int = 0
    last_message: str = ""
    updated_at: Any = None
    last_seen: Any = None
    unread: int = 0

    def apply_summary(self, doc: GroupDocument) -> bool:
        """Overwrite the mirrored fields from the latest group payload.

        Returns True when ``updatedAt`` moved, i.e. a message arrived.
        """
        moved = doc.get("updatedAt") != self.updated_at
        self.name = doc.get("name") or self.name
        self.avatar = group_avatar(self.id, doc.get("avatar"))
        self.member_count = doc.get("memberCount") or 0
        self.last_message = doc.get("lastMessage") or ""
        self.updated_at = doc.get("updatedAt")
        return moved

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def parse_group(doc: GroupDocument) -> GroupListing | None:
    """Build a listing from a raw group document.

    Groups whose coordinates are not numeric are dropped rather than placed at
    (0, 0), which would rank them as nearby for anyone near the equator.
    """
    latitude = parse_coordinate(doc.get("latitude"))
    longitude = parse_coordinate(doc.get("longitude"))
    if latitude is None or longitude is None:
        return None
    return GroupListing(
        id=doc["id"],
        name=doc.get("name") or DEFAULT_GROUP_NAME,
        avatar=group_avatar(doc["id"], doc.get("avatar")),
        latitude=latitude,
        longitude=longitude,
        member_count=doc.get("memberCount") or 0,
        last_message=doc.get("lastMessage") or "",
        updated_at=doc.get("updatedAt"),
    )
