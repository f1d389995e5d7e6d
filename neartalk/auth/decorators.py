"""Decorators for the auth blueprint."""

from functools import wraps

from flask import current_app, jsonify, session


def login_required(f):
    """Reject the request with 401 if the user is not logged in.

    Works for both sync and async views.
    """

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if "user_id" not in session:
            return (
                jsonify({"success": False, "message": "Authentication required."}),
                401,
            )
        return current_app.ensure_sync(f)(*args, **kwargs)

    return decorated_function
