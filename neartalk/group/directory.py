"""Discovery of nearby groups and the global group search."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from neartalk.constants import (
    DISCOVERY_RADIUS_KM,
    GLOBAL_SEARCH_DEFAULT_LIMIT,
    GROUPS,
    JOINED_GROUPS,
    USERS,
)
from neartalk.core.store import DocumentStore, StoreError, join_path
from neartalk.errors import OperationFailed
from neartalk.geo.distance import distance, sort_key, within_radius
from neartalk.geo.location import Location

from .models import GroupListing, parse_group

logger = logging.getLogger(__name__)


def _name_matches(listing: GroupListing, query: str) -> bool:
    return query in listing.name.lower()


class DirectoryView:
    """A loaded directory: proximity-sorted listings plus the view filters."""

    def __init__(
        self,
        groups: list[GroupListing],
        location: Location,
        radius_km: float = DISCOVERY_RADIUS_KM,
    ) -> None:
        self.groups = sorted(groups, key=lambda g: sort_key(g.distance))
        self.location = location
        self.radius_km = radius_km

    @property
    def can_toggle_show_all(self) -> bool:
        """The near-me / show-all switch only means something with a position."""
        return self.location.is_available and bool(self.groups)

    def is_nearby(self, group: GroupListing) -> bool:
        if not self.location.is_available:
            return True
        return within_radius(group.distance, self.radius_km, include_unknown=True)

    def visible(self, show_all: bool = False, query: str = "") -> list[GroupListing]:
        """Groups to display, the name filter applied on top of proximity."""
        groups = self.groups if show_all else [g for g in self.groups if self.is_nearby(g)]
        needle = query.strip().lower()
        if needle:
            groups = [g for g in groups if _name_matches(g, needle)]
        return groups


@dataclass
class SearchResults:
    """Global search results with a keyboard cursor."""

    query: str
    results: list[GroupListing] = field(default_factory=list)
    active_index: int = 0

    @property
    def joined(self) -> list[GroupListing]:
        return [g for g in self.results if g.is_joined]

    @property
    def discover(self) -> list[GroupListing]:
        return [g for g in self.results if not g.is_joined]

    @property
    def active(self) -> GroupListing | None:
        if not self.results:
            return None
        return self.results[self.active_index]

    def move(self, step: int) -> GroupListing | None:
        """Move the cursor, stopping at the first and last result."""
        if self.results:
            last = len(self.results) - 1
            self.active_index = max(0, min(self.active_index + step, last))
        return self.active


class GroupDirectory:
    """Loads every group and ranks it against the caller's position."""

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        radius_km: float = DISCOVERY_RADIUS_KM,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.radius_km = radius_km

    async def _fetch(self, location: Location) -> list[GroupListing]:
        try:
            group_docs, joined_docs = await asyncio.gather(
                self.store.query(GROUPS),
                self.store.query(join_path(USERS, self.user_id, JOINED_GROUPS)),
            )
        except StoreError as e:
            logger.error(f"Error loading groups for {self.user_id}: {e}")
            raise OperationFailed("Could not load groups. Please try again.") from e

        joined_ids = {doc["id"] for doc in joined_docs}
        listings = []
        for doc in group_docs:
            listing = parse_group(doc)
            if listing is None:
                logger.debug(f"Skipping group {doc['id']} with unusable coordinates")
                continue
            listing.is_joined = listing.id in joined_ids
            if location.is_available:
                listing.distance = distance(
                    location.latitude,  # type: ignore[union-attr]
                    location.longitude,  # type: ignore[union-attr]
                    listing.latitude,
                    listing.longitude,
                )
            listings.append(listing)
        return listings

    async def load(self, location: Location) -> DirectoryView:
        """Load the discovery list for ``location``."""
        listings = await self._fetch(location)
        return DirectoryView(listings, location, self.radius_km)

    async def search(
        self,
        query: str,
        location: Location,
        *,
        nearby_only: bool = False,
        limit: int = GLOBAL_SEARCH_DEFAULT_LIMIT,
    ) -> SearchResults:
        """Search every group by name.

        Prefix matches come first, then nearer groups. With ``nearby_only`` a
        group must be provably within the radius; unknown distances are out.
        """
        listings = await self._fetch(location)
        if nearby_only:
            listings = [
                g
                for g in listings
                if within_radius(g.distance, self.radius_km, include_unknown=False)
            ]

        needle = query.strip().lower()
        if not needle:
            return SearchResults(query=query, results=listings[:limit])

        matches = [g for g in listings if _name_matches(g, needle)]
        matches.sort(
            key=lambda g: (not g.name.lower().startswith(needle), sort_key(g.distance))
        )
        return SearchResults(query=query, results=matches)
