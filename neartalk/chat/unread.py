"""The user's joined groups with their unread badges."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from functools import partial
from typing import Any, Callable, Iterable, Mapping

from neartalk.constants import GROUPS, JOINED_GROUPS, MESSAGES, USERS
from neartalk.core.store import DocumentStore, StoreError, Subscription, join_path
from neartalk.core.tasks import BackgroundTasks
from neartalk.core.types import GroupDocument, JoinedGroupDocument
from neartalk.errors import OperationFailed
from neartalk.group.models import JoinedGroup

logger = logging.getLogger(__name__)


def count_unread(
    messages: Iterable[Mapping[str, Any]], last_seen: Any, user_id: str
) -> int:
    """Messages the user has not seen.

    Without a watermark the group was never opened and its whole backlog
    counts. Otherwise only other people's messages newer than the watermark
    count; messages still waiting for a server timestamp do not.
    """
    if last_seen is None:
        return sum(1 for _ in messages)
    return sum(
        1
        for m in messages
        if m.get("createdAt") is not None
        and m["createdAt"] > last_seen
        and m.get("senderId") != user_id
    )


def _recency(group: JoinedGroup) -> float:
    if isinstance(group.updated_at, datetime):
        return group.updated_at.timestamp()
    return 0.0


class UnreadTracker:
    """Keeps "my groups" and their unread counts in step with the store.

    The index of joined groups is authoritative for which groups are listed.
    Each listed group's summary document is followed separately and applied
    from its latest payload; a moved ``updatedAt`` triggers a recount of that
    group only. Feeds may deliver in any order.
    """

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        *,
        on_change: Callable[[list[JoinedGroup]], None] | None = None,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.on_change = on_change
        self.groups: dict[str, JoinedGroup] = {}
        self.active_group_id: str | None = None
        self._generation = 0
        self._index_subscription: Subscription | None = None
        self._summaries: dict[str, Subscription] = {}
        self._tasks = BackgroundTasks("unread")

    @property
    def index_path(self) -> str:
        return join_path(USERS, self.user_id, JOINED_GROUPS)

    @property
    def joined(self) -> list[JoinedGroup]:
        """Joined groups, most recently active first."""
        return sorted(self.groups.values(), key=_recency, reverse=True)

    def filter(self, query: str) -> list[JoinedGroup]:
        needle = query.strip().lower()
        if not needle:
            return self.joined
        return [g for g in self.joined if needle in g.name.lower()]

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.joined)

    async def unread_for(self, group_id: str, last_seen: Any) -> int:
        messages = join_path(GROUPS, group_id, MESSAGES)
        if last_seen is None:
            return await self.store.count(messages)
        newer = await self.store.query(messages, where=[("createdAt", ">", last_seen)])
        return count_unread(newer, last_seen, self.user_id)

    async def _load_entry(self, index_doc: JoinedGroupDocument) -> JoinedGroup | None:
        group_id = index_doc["id"]
        try:
            group_doc = await self.store.get(join_path(GROUPS, group_id))
            if group_doc is None:
                return None
            entry = JoinedGroup(
                id=group_id,
                name=index_doc.get("name") or "",
                last_seen=index_doc.get("lastSeen"),
            )
            entry.apply_summary(group_doc)
            if group_id != self.active_group_id:
                entry.unread = await self.unread_for(group_id, entry.last_seen)
        except StoreError as e:
            logger.error(f"Error loading joined group {group_id}: {e}")
            return None
        return entry

    async def _rebuild(self, index_docs: list[JoinedGroupDocument]) -> None:
        self._generation += 1
        generation = self._generation
        entries = await asyncio.gather(*(self._load_entry(d) for d in index_docs))
        if generation != self._generation:
            # A newer index snapshot is being applied; this one is stale.
            return
        self.groups = {e.id: e for e in entries if e is not None}
        active = self.groups.get(self.active_group_id)
        if active is not None:
            # The group may have been opened while its count was in flight.
            active.unread = 0
        if self._index_subscription is not None:
            self._reconcile_summaries()
        self._notify()

    async def refresh(self) -> list[JoinedGroup]:
        """Reload the index and recount every badge."""
        try:
            index_docs = await self.store.query(self.index_path)
        except StoreError as e:
            logger.error(f"Error loading joined groups for {self.user_id}: {e}")
            raise OperationFailed("Could not load your groups. Please try again.") from e
        await self._rebuild(index_docs)
        return self.joined

    def watch(self) -> Subscription:
        """Follow the index and every joined group's summary until closed."""
        self._index_subscription = self.store.watch_collection(
            self.index_path, self._on_index
        )
        return Subscription(self.close, f"unread:{self.user_id}")

    def _on_index(self, index_docs: list[JoinedGroupDocument]) -> None:
        self._tasks.spawn(self._rebuild(index_docs))

    def _reconcile_summaries(self) -> None:
        for group_id in self.groups.keys() - self._summaries.keys():
            self._summaries[group_id] = self.store.watch_document(
                join_path(GROUPS, group_id), partial(self._on_summary, group_id)
            )
        for group_id in self._summaries.keys() - self.groups.keys():
            self._summaries.pop(group_id).close()

    def _on_summary(self, group_id: str, doc: GroupDocument | None) -> None:
        entry = self.groups.get(group_id)
        if entry is None or doc is None:
            return
        moved = entry.apply_summary(doc)
        if moved and group_id != self.active_group_id:
            self._tasks.spawn(self._recount(entry))
        self._notify()

    async def _recount(self, entry: JoinedGroup) -> None:
        try:
            count = await self.unread_for(entry.id, entry.last_seen)
        except StoreError as e:
            logger.warning(f"Could not recount unread messages in {entry.id}: {e}")
            return
        if self.groups.get(entry.id) is entry and entry.id != self.active_group_id:
            entry.unread = count
            self._notify()

    def open_group(self, group_id: str) -> None:
        """Mark ``group_id`` as being read.

        The badge clears at once; the watermark write runs in the background
        and nothing waits for it.
        """
        self.active_group_id = group_id
        entry = self.groups.get(group_id)
        if entry is not None:
            entry.unread = 0
            self._notify()
        self._tasks.spawn(self._advance_watermark(group_id))

    def close_group(self, group_id: str) -> None:
        """Stop treating ``group_id`` as open, recording what was read."""
        if self.active_group_id != group_id:
            return
        self.active_group_id = None
        if group_id in self.groups:
            self._tasks.spawn(self._advance_watermark(group_id))

    def forget(self, group_id: str) -> None:
        """Drop ``group_id`` locally ahead of leaving it; no watermark is written."""
        if self.active_group_id == group_id:
            self.active_group_id = None
        self.groups.pop(group_id, None)
        subscription = self._summaries.pop(group_id, None)
        if subscription is not None:
            subscription.close()
        self._notify()

    async def _advance_watermark(self, group_id: str) -> None:
        try:
            await self.store.set(
                join_path(self.index_path, group_id),
                {"lastSeen": self.store.SERVER_TIMESTAMP},
                merge=True,
            )
        except StoreError as e:
            logger.warning(f"Could not advance lastSeen for {group_id}: {e}")

    async def settle(self) -> None:
        """Wait for background recounts and watermark writes to finish."""
        await self._tasks.drain()

    def close(self) -> None:
        self._tasks.cancel()
        if self._index_subscription is not None:
            self._index_subscription.close()
            self._index_subscription = None
        for subscription in self._summaries.values():
            subscription.close()
        self._summaries.clear()
