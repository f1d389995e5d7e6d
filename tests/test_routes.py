"""Tests for the group and chat blueprints."""

import unittest

from neartalk import create_app
from tests.fake_store import FakeStore

MOCK_USER_ID = "user1"
OTHER_USER_ID = "user2"


class RoutesTestCase(unittest.TestCase):
    """Base test case with an app bound to an in-memory store."""

    def setUp(self):
        self.store = FakeStore()
        self.app = create_app(
            {"TESTING": True, "WTF_CSRF_ENABLED": False, "SECRET_KEY": "test"},
            store=self.store,
        )
        self.client = self.app.test_client()

    def _set_session_user(self, user_id=MOCK_USER_ID):
        with self.client.session_transaction() as sess:
            sess["user_id"] = user_id

    def _seed_group(self, group_id, name, dlat=0.0, **extra):
        data = {
            "name": name,
            "avatar": f"https://avatars.test/{group_id}",
            "latitude": 48.0 + dlat,
            "longitude": 2.0,
            "memberCount": 0,
            "lastMessage": "",
            "updatedAt": self.store.SERVER_TIMESTAMP,
        }
        data.update(extra)
        self.store.seed(f"groups/{group_id}", data)

    def _join(self, group_id, nickname="Sam"):
        return self.client.post(f"/groups/{group_id}/join", json={"nickname": nickname})


class GroupRoutesTestCase(RoutesTestCase):
    """Test discovery, search and membership routes."""

    def test_requires_login(self):
        response = self.client.get("/groups/?lat=48&lon=2")
        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.get_json()["success"])

    def test_discover_nearby_and_all(self):
        self._set_session_user()
        self._seed_group("near", "Coffee Corner", 0.01)
        self._seed_group("far", "Far Away", 0.5)

        response = self.client.get("/groups/?lat=48&lon=2&accuracy=precise")
        self.assertEqual(response.status_code, 200)
        data = response.get_json()["data"]
        self.assertEqual([g["id"] for g in data["groups"]], ["near"])
        self.assertEqual(data["location"]["accuracy"], "precise")
        self.assertTrue(data["canToggleShowAll"])
        self.assertEqual(data["groups"][0]["distance_km"], 1.1)

        response = self.client.get("/groups/?lat=48&lon=2&all=1")
        data = response.get_json()["data"]
        self.assertEqual([g["id"] for g in data["groups"]], ["near", "far"])

    def test_discover_without_location_lists_everything(self):
        self._set_session_user()
        self._seed_group("near", "Coffee Corner", 0.01)
        self._seed_group("far", "Far Away", 0.5)
        data = self.client.get("/groups/").get_json()["data"]
        self.assertEqual(data["location"], {"accuracy": "unavailable"})
        self.assertFalse(data["canToggleShowAll"])
        self.assertEqual(len(data["groups"]), 2)

    def test_search_sections(self):
        self._set_session_user()
        self._seed_group("g1", "Coffee Corner", 0.01)
        self._seed_group("g2", "Coffee Club", 0.02)
        self._join("g2")
        data = self.client.get("/groups/search?q=coffee&lat=48&lon=2").get_json()["data"]
        self.assertEqual([g["id"] for g in data["joined"]], ["g2"])
        self.assertEqual([g["id"] for g in data["discover"]], ["g1"])

    def test_create_group(self):
        self._set_session_user()
        response = self.client.post(
            "/groups/",
            json={
                "name": "  Morning Runners ",
                "nickname": "Sam",
                "avatar_style": "lorelei",
                "latitude": 48.1,
                "longitude": 2.2,
                "accuracy": "precise",
            },
        )
        self.assertEqual(response.status_code, 201)
        group = response.get_json()["data"]
        stored = self.store.data(f"groups/{group['id']}")
        self.assertEqual(stored["name"], "Morning Runners")
        self.assertEqual(stored["createdBy"], MOCK_USER_ID)
        self.assertIn("/lorelei/svg", stored["avatar"])
        self.assertIsNotNone(
            self.store.data(f"users/{MOCK_USER_ID}/joinedGroups/{group['id']}")
        )

    def test_create_group_needs_location(self):
        self._set_session_user()
        response = self.client.post("/groups/", json={"name": "Runners", "nickname": "Sam"})
        self.assertEqual(response.status_code, 422)
        self.assertIn("Location is required", response.get_json()["message"])
        self.assertEqual(self.store.docs, {})

    def test_create_group_validation(self):
        self._set_session_user()
        response = self.client.post(
            "/groups/", json={"name": "   ", "nickname": "Sam", "latitude": 1, "longitude": 1}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["message"], "Please enter a group name.")

        response = self.client.post(
            "/groups/",
            json={"name": "x" * 61, "nickname": "Sam", "latitude": 1, "longitude": 1},
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            "/groups/",
            json={
                "name": "Runners",
                "nickname": "Sam",
                "avatar_style": "clipart",
                "latitude": 1,
                "longitude": 1,
            },
        )
        self.assertEqual(response.status_code, 400)

    def test_create_group_with_unavailable_flag(self):
        self._set_session_user()
        response = self.client.post(
            "/groups/",
            json={
                "name": "Runners",
                "nickname": "Sam",
                "latitude": 0,
                "longitude": 0,
                "accuracy": "unavailable",
            },
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(self.store.docs, {})

    def test_discover_with_unavailable_flag_lists_everything(self):
        self._set_session_user()
        self._seed_group("near", "Coffee Corner", 0.01)
        self._seed_group("far", "Far Away", 0.5)
        data = self.client.get(
            "/groups/?lat=0&lon=0&accuracy=unavailable"
        ).get_json()["data"]
        self.assertEqual(data["location"], {"accuracy": "unavailable"})
        self.assertFalse(data["canToggleShowAll"])
        self.assertEqual(len(data["groups"]), 2)

    def test_numeric_nickname_is_read_as_text(self):
        self._set_session_user()
        self._seed_group("g1", "Coffee")
        response = self.client.post("/groups/g1/join", json={"nickname": 12345})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            self.store.data(f"groups/g1/members/{MOCK_USER_ID}")["nickname"], "12345"
        )

    def test_overlong_numeric_nickname_is_rejected(self):
        self._set_session_user()
        self._seed_group("g1", "Coffee")
        response = self.client.post("/groups/g1/join", json={"nickname": 10**40})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.store.data("groups/g1")["memberCount"], 0)

    def test_join_twice_counts_once(self):
        self._set_session_user()
        self._seed_group("g1", "Coffee")
        first = self._join("g1")
        second = self._join("g1")
        self.assertTrue(first.get_json()["data"]["joined"])
        self.assertFalse(second.get_json()["data"]["joined"])
        self.assertEqual(self.store.data("groups/g1")["memberCount"], 1)

    def test_join_missing_group(self):
        self._set_session_user()
        response = self._join("nope")
        self.assertEqual(response.status_code, 404)

    def test_join_requires_nickname(self):
        self._set_session_user()
        self._seed_group("g1", "Coffee")
        response = self._join("g1", nickname="")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["message"], "Please enter a nickname.")

    def test_leave(self):
        self._set_session_user()
        self._seed_group("g1", "Coffee")
        self._join("g1")
        response = self.client.post("/groups/g1/leave")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.store.data("groups/g1")["memberCount"], 0)
        self.assertIsNone(self.store.data(f"users/{MOCK_USER_ID}/joinedGroups/g1"))

    def test_my_groups_with_unread_counts(self):
        self._set_session_user(OTHER_USER_ID)
        self._seed_group("g1", "Coffee")
        self._seed_group("g2", "Chess")
        self._join("g1", "Kim")
        self.client.post("/chat/g1/messages", json={"text": "anyone here?"})

        self._set_session_user()
        self._join("g1")
        self._join("g2")
        data = self.client.get("/groups/mine").get_json()["data"]
        unread = {g["id"]: g["unread"] for g in data["groups"]}
        self.assertEqual(unread, {"g1": 1, "g2": 0})

        self.client.post("/groups/g1/seen")
        data = self.client.get("/groups/mine?q=coff").get_json()["data"]
        self.assertEqual([(g["id"], g["unread"]) for g in data["groups"]], [("g1", 0)])

    def test_seen_requires_membership(self):
        self._set_session_user()
        self._seed_group("g1", "Coffee")
        response = self.client.post("/groups/g1/seen")
        self.assertEqual(response.status_code, 404)
        self.assertIsNone(self.store.data(f"users/{MOCK_USER_ID}/joinedGroups/g1"))

    def test_avatar_choices(self):
        self._set_session_user()
        data = self.client.get("/groups/avatars?name=Runners").get_json()["data"]
        self.assertEqual(len(data["avatars"]), 8)
        self.assertTrue(all("seed=Runners" in a["url"] for a in data["avatars"]))

    def test_store_failure_is_reported(self):
        self._set_session_user()
        self.store.fail("query", "groups")
        response = self.client.get("/groups/?lat=48&lon=2")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(
            response.get_json()["message"], "Could not load groups. Please try again."
        )


class ChatRoutesTestCase(RoutesTestCase):
    """Test message and typing routes."""

    def setUp(self):
        super().setUp()
        self._seed_group("g1", "Coffee")
        self._set_session_user()

    def _send(self, text):
        return self.client.post("/chat/g1/messages", json={"text": text})

    def test_send_requires_membership(self):
        response = self._send("hello")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.store.ops("add"), [])

    def test_send_and_list(self):
        self._join("g1")
        response = self._send("  hello there ")
        self.assertEqual(response.status_code, 201)
        self._send("second message")

        data = self.client.get("/chat/g1/messages").get_json()["data"]
        self.assertEqual(
            [m["text"] for m in data["messages"]], ["hello there", "second message"]
        )
        self.assertEqual(data["messages"][0]["senderName"], "Sam")
        self.assertEqual(self.store.data("groups/g1")["lastMessage"], "second message")

    def test_blank_message_is_not_sent(self):
        self._join("g1")
        response = self._send("   ")
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.get_json()["data"])
        self.assertEqual(self.store.ops("add"), [])

    def test_numeric_message_is_sent_as_text(self):
        self._join("g1")
        response = self.client.post("/chat/g1/messages", json={"text": 42})
        self.assertEqual(response.status_code, 201)
        data = self.client.get("/chat/g1/messages").get_json()["data"]
        self.assertEqual([m["text"] for m in data["messages"]], ["42"])

    def test_message_too_long(self):
        self._join("g1")
        response = self._send("x" * 1001)
        self.assertEqual(response.status_code, 400)

    def test_search_in_conversation(self):
        self._join("g1")
        self._send("Hello world")
        self._send("nothing")
        self._send("say hello")
        data = self.client.get("/chat/g1/messages?q=hello").get_json()["data"]
        search = data["search"]
        ids = [m["id"] for m in data["messages"]]
        self.assertEqual(search["status"], "1/2")
        self.assertEqual(search["matches"], [ids[0], ids[2]])
        self.assertEqual(search["current"], ids[0])
        self.assertEqual(
            search["highlights"][ids[2]],
            [{"text": "say ", "match": False}, {"text": "hello", "match": True}],
        )

    def test_list_missing_group(self):
        response = self.client.get("/chat/nope/messages")
        self.assertEqual(response.status_code, 404)

    def test_delete_own_message_only(self):
        self._join("g1")
        own_id = self._send("mine").get_json()["data"]["id"]

        self._set_session_user(OTHER_USER_ID)
        response = self.client.delete(f"/chat/g1/messages/{own_id}")
        self.assertEqual(response.status_code, 403)

        self._set_session_user()
        response = self.client.delete(f"/chat/g1/messages/{own_id}")
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(self.store.data(f"groups/g1/messages/{own_id}"))

    def test_typing_flags(self):
        self._join("g1")
        response = self.client.post("/chat/g1/typing", json={"typing": True})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(self.store.data(f"groups/g1/typing/{MOCK_USER_ID}")["typing"])

        # Our own flag is not reported back to us.
        data = self.client.get("/chat/g1/typing").get_json()["data"]
        self.assertEqual(data["typing"], [])

        self._set_session_user(OTHER_USER_ID)
        data = self.client.get("/chat/g1/typing").get_json()["data"]
        self.assertEqual(data["typing"], ["Sam"])

    def test_typing_validation(self):
        self._join("g1")
        response = self.client.post("/chat/g1/typing", json={"typing": "yes"})
        self.assertEqual(response.status_code, 400)


if __name__ == "__main__":
    unittest.main()
