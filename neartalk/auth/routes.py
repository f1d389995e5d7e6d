from firebase_admin import auth
from flask import current_app, jsonify, request, session
from flask_wtf.csrf import generate_csrf

from neartalk.extensions import csrf
from neartalk.utils import api_response

from . import bp


@bp.route("/csrf", methods=["GET"])
def csrf_token():
    """Hand the client a CSRF token for the X-CSRFToken header."""
    return jsonify(api_response({"csrfToken": generate_csrf()}))


@bp.route("/session_login", methods=["POST"])
@csrf.exempt
def session_login():
    """Exchange a Firebase ID token for a server session.

    Anonymous sign-in is enough; the token's uid becomes the user's identity.
    """
    payload = request.get_json(silent=True) or {}
    id_token = payload.get("idToken")
    if not id_token:
        return jsonify({"success": False, "message": "ID token is missing."}), 400

    try:
        decoded_token = auth.verify_id_token(id_token)
    except Exception as e:
        current_app.logger.error(f"Error during session login: {e}")
        return jsonify({"success": False, "message": "Invalid ID token."}), 401

    session.clear()
    session["user_id"] = decoded_token["uid"]
    current_app.logger.info(f"Session started for user {decoded_token['uid']}")
    return jsonify(api_response({"uid": decoded_token["uid"]}))


@bp.route("/logout", methods=["POST"])
def logout():
    """Log the user out."""
    session.clear()
    return jsonify(api_response(message="You have been logged out."))
