"""The live message feed of one group, and sending into it."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from neartalk.constants import (
    AUTO_SCROLL_THRESHOLD_PX,
    DEFAULT_NICKNAME,
    GROUPS,
    MESSAGE_MAX_LENGTH,
    MESSAGES,
)
from neartalk.core.store import DocumentStore, StoreError, Subscription, join_path
from neartalk.core.types import MessageDocument
from neartalk.errors import (
    NotFoundError,
    OperationFailed,
    PermissionDenied,
    ValidationError,
)
from neartalk.utils import clean_text, summarize_message

if TYPE_CHECKING:
    from .search import ConversationSearch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Message:
    """An immutable chat message."""

    id: str
    text: str
    sender_id: str
    sender_name: str
    created_at: Any = None

    @classmethod
    def from_document(cls, doc: MessageDocument) -> Message:
        return cls(
            id=doc["id"],
            text=doc.get("text") or "",
            sender_id=doc.get("senderId") or "",
            sender_name=doc.get("senderName") or DEFAULT_NICKNAME,
            created_at=doc.get("createdAt"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "senderId": self.sender_id,
            "senderName": self.sender_name,
            "createdAt": self.created_at,
        }


def order_messages(messages: list[Message]) -> list[Message]:
    """Ascending by ``created_at``; ties and unresolved timestamps keep feed order."""
    return sorted(
        messages,
        key=lambda m: (0, m.created_at) if m.created_at is not None else (1, 0),
    )


@dataclass
class FeedUpdate:
    """What changed between two consecutive feed snapshots."""

    messages: list[Message]
    added: list[Message] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    initial: bool = False
    scroll_to_bottom: bool = False


class MessageFeed:
    """Local copy of a group's messages.

    Every snapshot from the store replaces the whole list. Applying the same
    snapshot twice is a no-op, and a reordered or replayed delivery can only
    ever leave the state equal to the latest snapshot.
    """

    def __init__(self) -> None:
        self.messages: list[Message] = []
        self.loaded = False

    def apply(self, documents: list[MessageDocument]) -> FeedUpdate:
        incoming = order_messages([Message.from_document(d) for d in documents])
        previous = {m.id for m in self.messages}
        current = {m.id for m in incoming}
        update = FeedUpdate(
            messages=incoming,
            added=[m for m in incoming if m.id not in previous],
            removed=[m.id for m in self.messages if m.id not in current],
            initial=not self.loaded,
        )
        self.messages = incoming
        self.loaded = True
        return update


@dataclass
class Viewport:
    """Scroll geometry of the message list as last reported by the view."""

    scroll_top: float = 0
    scroll_height: float = 0
    client_height: float = 0

    @property
    def distance_from_bottom(self) -> float:
        return self.scroll_height - self.scroll_top - self.client_height

    def near_bottom(self, threshold: float = AUTO_SCROLL_THRESHOLD_PX) -> bool:
        return self.distance_from_bottom <= threshold


def should_auto_scroll(
    update: FeedUpdate,
    user_id: str,
    viewport: Viewport | None,
    search_active: bool,
) -> bool:
    """Decide whether the view jumps to the newest message after ``update``.

    ``viewport`` must describe the position before the update was rendered.
    """
    if search_active:
        return False
    if update.initial:
        return bool(update.messages)
    if not update.added:
        return False
    if any(m.sender_id == user_id for m in update.added):
        return True
    return viewport is None or viewport.near_bottom()


def prepare_text(text: str | None) -> str | None:
    """Trimmed message text, None for blank input."""
    text = clean_text(text)
    if not text:
        return None
    if len(text) > MESSAGE_MAX_LENGTH:
        raise ValidationError(
            f"Messages must be at most {MESSAGE_MAX_LENGTH} characters."
        )
    return text


async def post_message(
    store: DocumentStore, group_id: str, user_id: str, sender_name: str, text: str
) -> str:
    """Append a message and refresh the group's last-message preview."""
    message_id = await store.add(
        join_path(GROUPS, group_id, MESSAGES),
        {
            "text": text,
            "senderId": user_id,
            "senderName": sender_name,
            "createdAt": store.SERVER_TIMESTAMP,
        },
    )
    await store.update(
        join_path(GROUPS, group_id),
        {"lastMessage": summarize_message(text), "updatedAt": store.SERVER_TIMESTAMP},
    )
    return message_id


async def delete_message(
    store: DocumentStore, group_id: str, user_id: str, message_id: str
) -> None:
    """Hard-delete one of the user's own messages.

    The group's ``lastMessage`` preview is left as it is, even when the
    deleted message is the one it shows.
    """
    path = join_path(GROUPS, group_id, MESSAGES, message_id)
    message = await store.get(path)
    if message is None:
        raise NotFoundError("Message not found.")
    if message.get("senderId") != user_id:
        raise PermissionDenied("You can only delete your own messages.")
    await store.delete(path)


@dataclass
class Composer:
    """State of the message input box."""

    text: str = ""
    sending: bool = False
    error: str | None = None


class MessageStream:
    """Subscribes to one group's messages and sends on the user's behalf."""

    def __init__(
        self,
        store: DocumentStore,
        group_id: str,
        user_id: str,
        *,
        nickname: str = DEFAULT_NICKNAME,
        viewport: Viewport | None = None,
        search: ConversationSearch | None = None,
        on_update: Callable[[FeedUpdate], None] | None = None,
    ) -> None:
        self.store = store
        self.group_id = group_id
        self.user_id = user_id
        self.nickname = nickname
        self.viewport = viewport
        self.search = search
        self.on_update = on_update
        self.feed = MessageFeed()
        self._subscription: Subscription | None = None

    @property
    def messages(self) -> list[Message]:
        return self.feed.messages

    def open(self) -> Subscription:
        """Start listening; the returned handle stops it."""
        if self._subscription is None or self._subscription.closed:
            self._subscription = self.store.watch_collection(
                join_path(GROUPS, self.group_id, MESSAGES),
                self._on_snapshot,
                order_by="createdAt",
            )
            logger.debug(f"Listening to messages of {self.group_id}")
        return self._subscription

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()

    def _on_snapshot(self, documents: list[MessageDocument]) -> None:
        search_active = self.search is not None and self.search.active
        update = self.feed.apply(documents)
        update.scroll_to_bottom = should_auto_scroll(
            update, self.user_id, self.viewport, search_active
        )
        if self.search is not None:
            self.search.update_messages(update.messages)
        if self.on_update is not None:
            self.on_update(update)

    async def send(self, composer: Composer) -> str | None:
        """Send the composer's text.

        The input is cleared before the write and put back if the write fails,
        so the user can resubmit. Blank input and a send while another is in
        flight do nothing.
        """
        if composer.sending:
            return None
        text = prepare_text(composer.text)
        if text is None:
            return None

        original = composer.text
        composer.text = ""
        composer.error = None
        composer.sending = True
        try:
            return await post_message(
                self.store, self.group_id, self.user_id, self.nickname, text
            )
        except StoreError as e:
            logger.error(f"Error sending message to {self.group_id}: {e}")
            composer.text = original
            composer.error = "Failed to send message. Please try again."
            raise OperationFailed(composer.error) from e
        finally:
            composer.sending = False

    async def delete(self, message_id: str) -> None:
        try:
            await delete_message(self.store, self.group_id, self.user_id, message_id)
        except StoreError as e:
            logger.error(f"Error deleting message {message_id}: {e}")
            raise OperationFailed("Failed to delete message. Please try again.") from e
