"""Initialize the Flask app and its extensions."""

import json
import os

import firebase_admin
from firebase_admin import credentials
from flask import Flask, g, session
from werkzeug.middleware.proxy_fix import ProxyFix

from .constants import (
    AVATAR_BASE_URL,
    DISCOVERY_RADIUS_KM,
    IP_GEOLOCATION_URL,
    TYPING_IDLE_SECONDS,
)
from .extensions import STORE_EXTENSION, csrf


def _init_firebase(app):
    """Initialize the Firebase Admin SDK from env, a local file, or default credentials."""
    cred = None
    project_id = None

    # First, try to load from environment variable (for production)
    cred_json = os.environ.get("FIREBASE_CREDENTIALS_JSON")
    if cred_json:
        try:
            cred_info = json.loads(cred_json)
            project_id = cred_info.get("project_id")
            cred = credentials.Certificate(cred_info)
        except (json.JSONDecodeError, ValueError) as e:
            app.logger.error(f"Error parsing FIREBASE_CREDENTIALS_JSON: {e}")

    # If env var fails or is not present, try loading from file (for local dev)
    if not cred:
        cred_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)), "firebase_credentials.json"
        )
        if os.path.exists(cred_path):
            try:
                with open(cred_path, "r") as f:
                    cred_info = json.load(f)
                project_id = cred_info.get("project_id")
                cred = credentials.Certificate(cred_path)
            except (json.JSONDecodeError, ValueError) as e:
                app.logger.error(f"Error loading credentials from file: {e}")

    # If both methods fail, fallback to default credentials
    if not cred:
        try:
            cred = credentials.ApplicationDefault()
            project_id = os.environ.get("FIREBASE_PROJECT_ID")
        except Exception as e:
            app.logger.error(
                f"Could not find any valid credentials (env, file, or default): {e}"
            )

    if cred and not firebase_admin._apps:
        try:
            options = {"projectId": project_id} if project_id else None
            firebase_admin.initialize_app(cred, options)
        except ValueError:
            # This can happen if the app is already initialized, which is fine.
            app.logger.info("Firebase app already initialized.")


def create_app(test_config=None, store=None):
    """Create and configure an instance of the Flask application.

    ``store`` replaces the Firestore-backed document store, e.g. with a fake
    in tests.
    """
    app = Flask(__name__, instance_relative_config=True)

    # Load configuration
    app.config.from_mapping(
        SECRET_KEY=os.environ.get("SECRET_KEY") or "dev",
        DISCOVERY_RADIUS_KM=float(
            os.environ.get("DISCOVERY_RADIUS_KM") or DISCOVERY_RADIUS_KM
        ),
        TYPING_IDLE_SECONDS=float(
            os.environ.get("TYPING_IDLE_SECONDS") or TYPING_IDLE_SECONDS
        ),
        IP_GEOLOCATION_URL=os.environ.get("IP_GEOLOCATION_URL") or IP_GEOLOCATION_URL,
        AVATAR_BASE_URL=os.environ.get("AVATAR_BASE_URL") or AVATAR_BASE_URL,
        WTF_CSRF_HEADERS=["X-CSRFToken", "X-CSRF-Token"],
    )

    if test_config:
        app.config.update(test_config)

    if store is not None:
        app.extensions[STORE_EXTENSION] = store
    elif not app.config.get("TESTING"):
        _init_firebase(app)

    csrf.init_app(app)

    # Register blueprints
    from . import auth as auth_bp

    app.register_blueprint(auth_bp.bp)

    from . import group as group_bp

    app.register_blueprint(group_bp.bp)

    from . import chat as chat_bp

    app.register_blueprint(chat_bp.bp)

    from . import error_handlers

    app.register_blueprint(error_handlers.error_handlers_bp)

    @app.before_request
    def load_logged_in_user():
        """Expose the signed-in user's id as g.user_id."""
        g.user_id = session.get("user_id")

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    return app
