"""Tests for the live message feed and sending messages."""

import asyncio
import unittest
from datetime import datetime, timezone

from neartalk.chat.search import ConversationSearch
from neartalk.chat.stream import (
    Composer,
    FeedUpdate,
    Message,
    MessageFeed,
    MessageStream,
    Viewport,
    delete_message,
    order_messages,
    post_message,
    prepare_text,
    should_auto_scroll,
)
from neartalk.errors import (
    NotFoundError,
    OperationFailed,
    PermissionDenied,
    ValidationError,
)
from tests.fake_store import FakeStore

USER_ID = "user1"
OTHER_ID = "user2"


def _ts(minute):
    return datetime(2024, 1, 1, 11, minute, tzinfo=timezone.utc)


def _doc(msg_id, minute, sender=OTHER_ID, text="hi"):
    return {
        "id": msg_id,
        "text": text,
        "senderId": sender,
        "senderName": "Sam",
        "createdAt": _ts(minute) if minute is not None else None,
    }


def run(coro):
    return asyncio.run(coro)


class MessageTestCase(unittest.TestCase):
    """Test message parsing and ordering."""

    def test_from_document_defaults(self):
        message = Message.from_document({"id": "m1"})
        self.assertEqual(message.text, "")
        self.assertEqual(message.sender_name, "Anonymous")
        self.assertIsNone(message.created_at)
        self.assertEqual(message.to_dict()["id"], "m1")

    def test_pending_messages_sort_last_in_arrival_order(self):
        messages = [
            Message.from_document(_doc("p1", None)),
            Message.from_document(_doc("b", 2)),
            Message.from_document(_doc("p2", None)),
            Message.from_document(_doc("a", 1)),
        ]
        self.assertEqual([m.id for m in order_messages(messages)], ["a", "b", "p1", "p2"])


class MessageFeedTestCase(unittest.TestCase):
    """Test snapshot application."""

    def test_snapshot_replaces_state(self):
        feed = MessageFeed()
        first = feed.apply([_doc("b", 2), _doc("a", 1)])
        self.assertTrue(first.initial)
        self.assertEqual([m.id for m in first.messages], ["a", "b"])
        self.assertEqual([m.id for m in first.added], ["a", "b"])

        second = feed.apply([_doc("b", 2), _doc("c", 3)])
        self.assertFalse(second.initial)
        self.assertEqual([m.id for m in second.added], ["c"])
        self.assertEqual(second.removed, ["a"])
        self.assertEqual([m.id for m in feed.messages], ["b", "c"])

    def test_duplicate_delivery_is_a_no_op(self):
        feed = MessageFeed()
        snapshot = [_doc("a", 1), _doc("b", 2)]
        feed.apply(snapshot)
        before = list(feed.messages)
        again = feed.apply(snapshot)
        self.assertEqual(feed.messages, before)
        self.assertEqual(again.added, [])
        self.assertEqual(again.removed, [])

    def test_stale_then_latest_delivery_converges(self):
        feed = MessageFeed()
        feed.apply([_doc("a", 1), _doc("b", 2), _doc("c", 3)])
        feed.apply([_doc("a", 1)])
        feed.apply([_doc("a", 1), _doc("b", 2), _doc("c", 3)])
        self.assertEqual([m.id for m in feed.messages], ["a", "b", "c"])


class AutoScrollTestCase(unittest.TestCase):
    """Test when the view follows new messages."""

    def _update(self, added, initial=False):
        messages = [Message.from_document(d) for d in added]
        return FeedUpdate(messages=messages, added=messages, initial=initial)

    def test_initial_load_scrolls_to_bottom(self):
        update = self._update([_doc("a", 1)], initial=True)
        far = Viewport(scroll_top=0, scroll_height=2000, client_height=500)
        self.assertTrue(should_auto_scroll(update, USER_ID, far, False))
        empty = FeedUpdate(messages=[], initial=True)
        self.assertFalse(should_auto_scroll(empty, USER_ID, far, False))

    def test_own_message_always_scrolls(self):
        far = Viewport(scroll_top=0, scroll_height=2000, client_height=500)
        update = self._update([_doc("a", 1, sender=USER_ID)])
        self.assertTrue(should_auto_scroll(update, USER_ID, far, False))

    def test_other_message_scrolls_only_near_bottom(self):
        update = self._update([_doc("a", 1)])
        near = Viewport(scroll_top=1400, scroll_height=2000, client_height=500)
        far = Viewport(scroll_top=1300, scroll_height=2000, client_height=500)
        self.assertEqual(near.distance_from_bottom, 100)
        self.assertTrue(should_auto_scroll(update, USER_ID, near, False))
        self.assertFalse(should_auto_scroll(update, USER_ID, far, False))
        self.assertTrue(should_auto_scroll(update, USER_ID, None, False))

    def test_search_suppresses_scrolling(self):
        update = self._update([_doc("a", 1, sender=USER_ID)])
        self.assertFalse(should_auto_scroll(update, USER_ID, None, True))

    def test_deletion_does_not_scroll(self):
        update = FeedUpdate(messages=[], removed=["a"])
        self.assertFalse(should_auto_scroll(update, USER_ID, None, False))


class PrepareTextTestCase(unittest.TestCase):
    """Test message text validation."""

    def test_blank_is_nothing_to_send(self):
        self.assertIsNone(prepare_text("   \n\t"))
        self.assertIsNone(prepare_text(None))

    def test_trimmed(self):
        self.assertEqual(prepare_text("  hello "), "hello")

    def test_length_limit(self):
        self.assertEqual(len(prepare_text("x" * 1000)), 1000)
        with self.assertRaises(ValidationError):
            prepare_text("x" * 1001)


class MessageStoreTestCase(unittest.TestCase):
    """Test posting and deleting messages against the store."""

    def setUp(self):
        self.store = FakeStore()
        self.store.seed("groups/g1", {"name": "Coffee", "lastMessage": ""})

    def test_post_updates_preview(self):
        message_id = run(post_message(self.store, "g1", USER_ID, "Sam", "hello"))
        message = self.store.data(f"groups/g1/messages/{message_id}")
        self.assertEqual(message["senderId"], USER_ID)
        self.assertEqual(message["senderName"], "Sam")
        group = self.store.data("groups/g1")
        self.assertEqual(group["lastMessage"], "hello")
        self.assertGreater(group["updatedAt"], message["createdAt"])

    def test_preview_is_truncated(self):
        run(post_message(self.store, "g1", USER_ID, "Sam", "y" * 80))
        self.assertEqual(self.store.data("groups/g1")["lastMessage"], "y" * 60 + "…")

    def test_delete_own_message_keeps_preview(self):
        message_id = run(post_message(self.store, "g1", USER_ID, "Sam", "oops"))
        run(delete_message(self.store, "g1", USER_ID, message_id))
        self.assertIsNone(self.store.data(f"groups/g1/messages/{message_id}"))
        self.assertEqual(self.store.data("groups/g1")["lastMessage"], "oops")

    def test_cannot_delete_others_messages(self):
        message_id = run(post_message(self.store, "g1", OTHER_ID, "Kim", "mine"))
        with self.assertRaises(PermissionDenied):
            run(delete_message(self.store, "g1", USER_ID, message_id))
        self.assertIsNotNone(self.store.data(f"groups/g1/messages/{message_id}"))

    def test_delete_missing_message(self):
        with self.assertRaises(NotFoundError):
            run(delete_message(self.store, "g1", USER_ID, "nope"))


class MessageStreamTestCase(unittest.TestCase):
    """Test the subscribed feed and sending through it."""

    def setUp(self):
        self.store = FakeStore()
        self.store.seed("groups/g1", {"name": "Coffee", "lastMessage": ""})
        self.store.seed("groups/g1/messages/old", _doc("old", 1))
        self.updates = []
        self.stream = MessageStream(
            self.store, "g1", USER_ID, nickname="Sam", on_update=self.updates.append
        )

    def test_open_delivers_initial_snapshot(self):
        subscription = self.stream.open()
        self.assertEqual(len(self.updates), 1)
        self.assertTrue(self.updates[0].initial)
        self.assertTrue(self.updates[0].scroll_to_bottom)
        self.assertEqual([m.id for m in self.stream.messages], ["old"])
        self.assertIs(self.stream.open(), subscription)

    def test_send_appears_in_feed(self):
        composer = Composer(text="  hello  ")

        async def scenario():
            self.stream.open()
            return await self.stream.send(composer)

        message_id = run(scenario())
        self.assertEqual(composer.text, "")
        self.assertFalse(composer.sending)
        self.assertEqual([m.id for m in self.stream.messages], ["old", message_id])
        self.assertEqual(self.stream.messages[-1].text, "hello")
        self.assertTrue(self.updates[-1].scroll_to_bottom)

    def test_blank_send_does_nothing(self):
        composer = Composer(text="   ")
        self.assertIsNone(run(self.stream.send(composer)))
        self.assertEqual(self.store.ops("add"), [])
        self.assertEqual(composer.text, "   ")

    def test_send_in_flight_is_ignored(self):
        composer = Composer(text="hello", sending=True)
        self.assertIsNone(run(self.stream.send(composer)))
        self.assertEqual(self.store.ops("add"), [])

    def test_failed_send_restores_text(self):
        self.store.fail("add")
        composer = Composer(text="hello")
        with self.assertRaises(OperationFailed):
            run(self.stream.send(composer))
        self.assertEqual(composer.text, "hello")
        self.assertEqual(composer.error, "Failed to send message. Please try again.")
        self.assertFalse(composer.sending)

    def test_closed_stream_stops_updates(self):
        self.stream.open()
        self.stream.close()
        run(post_message(self.store, "g1", OTHER_ID, "Kim", "later"))
        self.assertEqual(len(self.updates), 1)
        self.assertEqual(self.store.listener_count, 0)

    def test_search_results_follow_the_feed(self):
        search = ConversationSearch()
        search.set_query("hello")
        self.stream.search = search
        self.stream.open()
        run(post_message(self.store, "g1", OTHER_ID, "Kim", "hello there"))
        self.assertEqual(search.matches, [1])
        self.assertFalse(self.updates[-1].scroll_to_bottom)

    def test_delete_through_stream(self):
        message_id = run(post_message(self.store, "g1", OTHER_ID, "Kim", "not yours"))
        with self.assertRaises(PermissionDenied):
            run(self.stream.delete(message_id))
        self.store.fail("get")
        with self.assertRaises(OperationFailed):
            run(self.stream.delete(message_id))


if __name__ == "__main__":
    unittest.main()
