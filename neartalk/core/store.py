"""The document store interface the engine talks to.

Everything the chat engine needs from its backend is expressed here: single
document reads and writes, one atomic counter operation, and ordered live
subscriptions. Paths are slash separated, the same strings Firestore accepts
(``groups/abc/messages``). Documents are plain dicts carrying their ``id``.
"""

from __future__ import annotations

import abc
import logging
from typing import Any, Callable, Iterable, Sequence

logger = logging.getLogger(__name__)

Document = dict[str, Any]
Where = tuple[str, str, Any]
CollectionCallback = Callable[[list[Document]], None]
DocumentCallback = Callable[["Document | None"], None]


class StoreError(Exception):
    """Raised when the backing store rejects or fails an operation."""

    pass


class Subscription:
    """Handle for a live listener; closing it stops further deliveries."""

    def __init__(self, cancel: Callable[[], None], description: str = "") -> None:
        self._cancel = cancel
        self.description = description
        self.closed = False

    def close(self) -> None:
        """Unsubscribe. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        self._cancel()
        logger.debug(f"Released listener {self.description}")

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Subscription {self.description!r} {state}>"


class SubscriptionScope:
    """Owns every listener acquired for one view and releases them together."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def add(self, subscription: Subscription) -> Subscription:
        self._subscriptions.append(subscription)
        return subscription

    def release(self, subscription: Subscription) -> None:
        """Close one listener early and forget it."""
        subscription.close()
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def close(self) -> None:
        while self._subscriptions:
            self._subscriptions.pop().close()

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __enter__(self) -> SubscriptionScope:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class DocumentStore(abc.ABC):
    """Asynchronous document store with atomic counters and live queries."""

    #: Placeholder value replaced by the server's commit time.
    SERVER_TIMESTAMP: Any = None

    @abc.abstractmethod
    async def get(self, path: str) -> Document | None:
        """Return the document at ``path`` or None when it does not exist."""

    @abc.abstractmethod
    async def query(
        self,
        collection: str,
        *,
        where: Sequence[Where] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        """Return the documents of ``collection`` matching every filter."""

    @abc.abstractmethod
    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a store-assigned id and return the id."""

    @abc.abstractmethod
    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        """Create or overwrite a document; ``merge`` keeps unspecified fields."""

    @abc.abstractmethod
    async def update(self, path: str, data: dict[str, Any]) -> None:
        """Update fields of an existing document."""

    @abc.abstractmethod
    async def delete(self, path: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""

    @abc.abstractmethod
    async def increment(self, path: str, field: str, amount: int) -> None:
        """Atomically add ``amount`` to a numeric field of one document."""

    @abc.abstractmethod
    def watch_document(self, path: str, callback: DocumentCallback) -> Subscription:
        """Deliver the latest state of one document on every change."""

    @abc.abstractmethod
    def watch_collection(
        self,
        collection: str,
        callback: CollectionCallback,
        *,
        order_by: str | None = None,
    ) -> Subscription:
        """Deliver the full ordered contents of a collection on every change."""

    async def count(self, collection: str, *, where: Iterable[Where] = ()) -> int:
        return len(await self.query(collection, where=tuple(where)))


def join_path(*parts: str) -> str:
    """Build a store path from its segments."""
    return "/".join(part.strip("/") for part in parts)
