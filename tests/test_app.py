"""Tests for the app factory."""

import os
import unittest
from unittest.mock import patch

# Pre-emptive imports to ensure patch targets exist.
from neartalk import create_app
from neartalk.extensions import STORE_EXTENSION
from tests.fake_store import FakeStore


class AppFactoryTestCase(unittest.TestCase):
    """Test case for the app factory."""

    @patch("firebase_admin.initialize_app")
    def test_404_error_handler(self, mock_init_app):
        """Test the JSON 404 error handler."""
        app = create_app({"TESTING": True, "WTF_CSRF_ENABLED": False})

        with app.test_client() as client:
            response = client.get("/non_existent_page")
            self.assertEqual(response.status_code, 404)
            self.assertEqual(
                response.get_json(), {"success": False, "message": "Not found."}
            )
        mock_init_app.assert_not_called()

    def test_config_from_environment(self):
        """Test that tunables are read from the environment."""
        env_vars = {
            "SECRET_KEY": "from-env",
            "DISCOVERY_RADIUS_KM": "2.5",
            "TYPING_IDLE_SECONDS": "4",
            "IP_GEOLOCATION_URL": "https://geo.test/json/",
            "AVATAR_BASE_URL": "https://avatars.test/7.x",
        }

        with patch.dict(os.environ, env_vars):
            app = create_app({"TESTING": True})

        self.assertEqual(app.config["SECRET_KEY"], "from-env")
        self.assertEqual(app.config["DISCOVERY_RADIUS_KM"], 2.5)
        self.assertEqual(app.config["TYPING_IDLE_SECONDS"], 4.0)
        self.assertEqual(app.config["IP_GEOLOCATION_URL"], "https://geo.test/json/")
        self.assertEqual(app.config["AVATAR_BASE_URL"], "https://avatars.test/7.x")

    def test_empty_env_vars_fall_back_to_defaults(self):
        """Test that empty environment variables fall back to default values."""
        env_vars = {"DISCOVERY_RADIUS_KM": "", "TYPING_IDLE_SECONDS": ""}

        with patch.dict(os.environ, env_vars):
            app = create_app({"TESTING": True})

        self.assertEqual(app.config["DISCOVERY_RADIUS_KM"], 5.0)
        self.assertEqual(app.config["TYPING_IDLE_SECONDS"], 2.0)

    def test_injected_store(self):
        store = FakeStore()
        app = create_app({"TESTING": True}, store=store)
        self.assertIs(app.extensions[STORE_EXTENSION], store)

    @patch("neartalk._init_firebase")
    def test_firebase_initialized_outside_tests(self, mock_init_firebase):
        create_app()
        mock_init_firebase.assert_called_once()


if __name__ == "__main__":
    unittest.main()
