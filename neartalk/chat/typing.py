"""Who is typing in the open conversation."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from neartalk.constants import DEFAULT_NICKNAME, GROUPS, TYPING, TYPING_IDLE_SECONDS
from neartalk.core.store import DocumentStore, StoreError, Subscription, join_path
from neartalk.core.types import TypingDocument

logger = logging.getLogger(__name__)


class TypingPresence:
    """Publishes the user's typing flag and follows everyone else's.

    Flags expire on the client only: an idle timer clears ours, and ``close``
    clears it when the conversation is left. A client that dies without
    closing leaves its flag up; nothing on the server expires it.
    """

    def __init__(
        self,
        store: DocumentStore,
        group_id: str,
        user_id: str,
        nickname: str = DEFAULT_NICKNAME,
        *,
        idle_timeout: float = TYPING_IDLE_SECONDS,
        on_change: Callable[[list[str]], None] | None = None,
    ) -> None:
        self.store = store
        self.group_id = group_id
        self.user_id = user_id
        self.nickname = nickname
        self.idle_timeout = idle_timeout
        self.on_change = on_change
        self.others: dict[str, str] = {}
        self._desired = False
        self._published: bool | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._writer: asyncio.Task[None] | None = None
        self._subscription: Subscription | None = None

    @property
    def path(self) -> str:
        return join_path(GROUPS, self.group_id, TYPING, self.user_id)

    @property
    def typing_users(self) -> list[str]:
        """Nicknames of the other users currently typing."""
        return sorted(self.others.values())

    @property
    def is_typing(self) -> bool:
        return self._desired

    def start(self) -> Subscription:
        self._subscription = self.store.watch_collection(
            join_path(GROUPS, self.group_id, TYPING), self._on_snapshot
        )
        return self._subscription

    def _on_snapshot(self, documents: list[TypingDocument]) -> None:
        self.others = {
            doc["id"]: doc.get("nickname") or DEFAULT_NICKNAME
            for doc in documents
            if doc["id"] != self.user_id and doc.get("typing")
        }
        if self.on_change is not None:
            self.on_change(self.typing_users)

    def on_input(self, text: str) -> None:
        """Feed every change of the composer text here."""
        if text:
            self._request(True)
            self._restart_timer()
        else:
            self._cancel_timer()
            self._request(False)

    def _restart_timer(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.idle_timeout, self._on_idle)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_idle(self) -> None:
        self._timer = None
        self._request(False)

    def _request(self, typing: bool) -> None:
        self._desired = typing
        if self._writer is None or self._writer.done():
            self._writer = asyncio.get_running_loop().create_task(self._flush())

    async def _flush(self) -> None:
        # One writer at a time, always converging on the latest requested state.
        while self._published != self._desired:
            state = self._desired
            try:
                await self.publish(state)
            except StoreError as e:
                logger.warning(f"Could not publish typing={state} in {self.group_id}: {e}")
                return
            self._published = state

    async def publish(self, typing: bool) -> None:
        """Write our typing flag once, bypassing the idle timer."""
        await self.store.set(
            self.path,
            {
                "typing": typing,
                "nickname": self.nickname,
                "updatedAt": self.store.SERVER_TIMESTAMP,
            },
            merge=True,
        )

    async def close(self) -> None:
        """Stop listening and clear our flag whatever the timer state."""
        self._cancel_timer()
        if self._subscription is not None:
            self._subscription.close()
        self._desired = False
        if self._writer is not None and not self._writer.done():
            await self._writer
        try:
            await self.publish(False)
        except StoreError as e:
            logger.warning(f"Could not clear typing flag in {self.group_id}: {e}")
            return
        self._published = False
