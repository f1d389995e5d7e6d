"""Cloud Firestore implementation of the document store."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Sequence

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions

from .store import (
    CollectionCallback,
    Document,
    DocumentCallback,
    DocumentStore,
    StoreError,
    Subscription,
    Where,
)

if TYPE_CHECKING:
    from google.cloud.firestore_v1.base_document import DocumentSnapshot
    from google.cloud.firestore_v1.client import Client

logger = logging.getLogger(__name__)


def _to_document(snapshot: DocumentSnapshot | None) -> Document | None:
    """Flatten a snapshot into a dict carrying its id."""
    if snapshot is None or not snapshot.exists:
        return None
    data = snapshot.to_dict() or {}
    return {"id": snapshot.id, **data}


class FirestoreStore(DocumentStore):
    """Runs the synchronous Firestore client off the event loop.

    Reads and writes go through ``asyncio.to_thread``. Snapshot listeners fire
    on Firestore's watch thread; their payloads are handed back to the loop
    that created the subscription, so callbacks only ever run on that loop.
    """

    SERVER_TIMESTAMP = firestore.SERVER_TIMESTAMP

    def __init__(self, client: Client | None = None) -> None:
        self.client = client if client is not None else firestore.client()

    def _ref(self, path: str) -> Any:
        """Reference for a collection or document path, built segment by segment."""
        parts = path.split("/")
        ref: Any = self.client
        for i, part in enumerate(parts):
            ref = ref.collection(part) if i % 2 == 0 else ref.document(part)
        return ref

    async def _call(self, action: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except google_exceptions.GoogleAPIError as e:
            logger.error(f"Firestore {action} failed: {e}")
            raise StoreError(f"{action} failed: {e}") from e

    def _build_query(
        self,
        collection: str,
        where: Sequence[Where],
        order_by: str | None,
        descending: bool,
        limit: int | None,
    ) -> Any:
        query: Any = self._ref(collection)
        for field, op, value in where:
            query = query.where(filter=firestore.FieldFilter(field, op, value))
        if order_by:
            direction = (
                firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            )
            query = query.order_by(order_by, direction=direction)
        if limit:
            query = query.limit(limit)
        return query

    async def get(self, path: str) -> Document | None:
        snapshot = await self._call(f"get {path}", self._ref(path).get)
        return _to_document(snapshot)

    async def query(
        self,
        collection: str,
        *,
        where: Sequence[Where] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        query = self._build_query(collection, where, order_by, descending, limit)
        snapshots = await self._call(
            f"query {collection}", lambda: list(query.stream())
        )
        return [doc for doc in map(_to_document, snapshots) if doc is not None]

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        _, ref = await self._call(
            f"add to {collection}", self._ref(collection).add, data
        )
        return ref.id

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        ref = self._ref(path)
        await self._call(f"set {path}", lambda: ref.set(data, merge=merge))

    async def update(self, path: str, data: dict[str, Any]) -> None:
        await self._call(f"update {path}", self._ref(path).update, data)

    async def delete(self, path: str) -> None:
        await self._call(f"delete {path}", self._ref(path).delete)

    async def increment(self, path: str, field: str, amount: int) -> None:
        await self._call(
            f"increment {path}.{field}",
            self._ref(path).update,
            {field: firestore.Increment(amount)},
        )

    async def count(self, collection: str, *, where: Sequence[Where] = ()) -> int:
        """Server-side count aggregation; no documents are downloaded."""
        query = self._build_query(collection, where, None, False, None)
        results = await self._call(
            f"count {collection}", lambda: query.count(alias="total").get()
        )
        return int(results[0][0].value) if results and results[0] else 0

    def _marshal(self, description: str, deliver: Callable[[Any], None]) -> Any:
        """Wrap ``deliver`` so it runs on the calling loop instead of the watch thread."""
        loop = asyncio.get_running_loop()

        def on_watch_thread(payload: Any) -> None:
            try:
                loop.call_soon_threadsafe(deliver, payload)
            except RuntimeError:
                logger.warning(f"Dropped update for {description}: event loop closed")

        return on_watch_thread

    def watch_document(self, path: str, callback: DocumentCallback) -> Subscription:
        def deliver(document: Document | None) -> None:
            if not subscription.closed:
                callback(document)

        forward = self._marshal(path, deliver)

        def on_snapshot(snapshots: list[Any], changes: Any, read_time: Any) -> None:
            forward(_to_document(snapshots[0]) if snapshots else None)

        watch = self._ref(path).on_snapshot(on_snapshot)
        subscription = Subscription(watch.unsubscribe, path)
        return subscription

    def watch_collection(
        self,
        collection: str,
        callback: CollectionCallback,
        *,
        order_by: str | None = None,
    ) -> Subscription:
        def deliver(documents: list[Document]) -> None:
            if not subscription.closed:
                callback(documents)

        forward = self._marshal(collection, deliver)

        def on_snapshot(snapshots: list[Any], changes: Any, read_time: Any) -> None:
            forward([doc for doc in map(_to_document, snapshots) if doc is not None])

        query = self._build_query(collection, (), order_by, False, None)
        watch = query.on_snapshot(on_snapshot)
        subscription = Subscription(watch.unsubscribe, collection)
        return subscription
