"""A signed-in user's chat session: the active conversation and its lifecycle."""

from __future__ import annotations

import logging
from typing import Any, Callable

from neartalk.constants import DISCOVERY_RADIUS_KM, TYPING_IDLE_SECONDS
from neartalk.core.store import DocumentStore, Subscription, SubscriptionScope
from neartalk.geo.location import GeoProvider, Location, Unavailable
from neartalk.group.directory import DirectoryView, GroupDirectory
from neartalk.group.membership import MembershipLedger

from .search import ConversationSearch
from .stream import Composer, FeedUpdate, MessageStream, Viewport
from .typing import TypingPresence
from .unread import UnreadTracker

logger = logging.getLogger(__name__)


class Conversation:
    """One open group: its message feed, typing flags, search and composer.

    Use it as an async context manager; leaving the block releases every
    listener, cancels the typing timer and clears our typing flag.
    """

    def __init__(
        self,
        store: DocumentStore,
        group_id: str,
        user_id: str,
        nickname: str,
        *,
        viewport: Viewport | None = None,
        idle_timeout: float = TYPING_IDLE_SECONDS,
        on_update: Callable[[FeedUpdate], None] | None = None,
        on_typing: Callable[[list[str]], None] | None = None,
        on_focus: Callable[[int | None], None] | None = None,
    ) -> None:
        self.group_id = group_id
        self.composer = Composer()
        self.search = ConversationSearch(on_focus=on_focus)
        self.stream = MessageStream(
            store,
            group_id,
            user_id,
            nickname=nickname,
            viewport=viewport,
            search=self.search,
            on_update=on_update,
        )
        self.typing = TypingPresence(
            store,
            group_id,
            user_id,
            nickname,
            idle_timeout=idle_timeout,
            on_change=on_typing,
        )
        self._scope = SubscriptionScope()
        self.closed = False

    def open(self) -> None:
        self._scope.add(self.stream.open())
        self._scope.add(self.typing.start())

    def on_input(self, text: str) -> None:
        self.composer.text = text
        self.typing.on_input(text)

    async def send(self) -> str | None:
        try:
            return await self.stream.send(self.composer)
        finally:
            self.typing.on_input(self.composer.text)

    async def delete(self, message_id: str) -> None:
        await self.stream.delete(message_id)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._scope.close()
        self.search.clear()
        await self.typing.close()
        logger.debug(f"Closed conversation {self.group_id}")

    async def __aenter__(self) -> Conversation:
        self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class ChatSession:
    """Ties the directory, ledger, unread tracker and active conversation together.

    At most one conversation is open. Switching groups closes the previous one
    before the next one starts listening.
    """

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        *,
        geo: GeoProvider | None = None,
        radius_km: float = DISCOVERY_RADIUS_KM,
        idle_timeout: float = TYPING_IDLE_SECONDS,
        on_groups: Callable[..., None] | None = None,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.geo = geo or GeoProvider()
        self.idle_timeout = idle_timeout
        self.location: Location = Unavailable()
        self.ledger = MembershipLedger(store, user_id)
        self.directory = GroupDirectory(store, user_id, radius_km)
        self.unread = UnreadTracker(store, user_id, on_change=on_groups)
        self.active: Conversation | None = None
        self._unread_subscription: Subscription | None = None

    async def start(self) -> None:
        self._unread_subscription = self.unread.watch()

    async def locate(self) -> Location:
        self.location = await self.geo.locate()
        return self.location

    async def discover(self) -> DirectoryView:
        return await self.directory.load(self.location)

    async def open_group(
        self, group_id: str, *, viewport: Viewport | None = None, **callbacks: Any
    ) -> Conversation:
        """Make ``group_id`` the active conversation."""
        await self.close_conversation()
        nickname = await self.ledger.nickname(group_id)
        conversation = Conversation(
            self.store,
            group_id,
            self.user_id,
            nickname,
            viewport=viewport,
            idle_timeout=self.idle_timeout,
            **callbacks,
        )
        conversation.open()
        self.active = conversation
        self.unread.open_group(group_id)
        return conversation

    async def close_conversation(self) -> None:
        if self.active is None:
            return
        conversation, self.active = self.active, None
        await conversation.close()
        self.unread.close_group(conversation.group_id)

    async def leave_group(self, group_id: str) -> None:
        if self.active is not None and self.active.group_id == group_id:
            conversation, self.active = self.active, None
            await conversation.close()
        self.unread.forget(group_id)
        # Pending watermark writes would otherwise recreate the index entry.
        await self.unread.settle()
        await self.ledger.leave(group_id)

    async def close(self) -> None:
        await self.close_conversation()
        await self.unread.settle()
        if self._unread_subscription is not None:
            self._unread_subscription.close()
        self.unread.close()

    async def __aenter__(self) -> ChatSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
