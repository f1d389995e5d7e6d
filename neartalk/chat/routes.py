"""Routes for the chat blueprint."""

from flask import g, jsonify, request

from neartalk.auth.decorators import login_required
from neartalk.constants import DEFAULT_NICKNAME, GROUPS, MESSAGES, TYPING
from neartalk.core.store import join_path
from neartalk.errors import NotFoundError, PermissionDenied, ValidationError
from neartalk.extensions import get_store
from neartalk.group.membership import MembershipLedger
from neartalk.utils import api_response, form_error

from . import bp
from .forms import MessageForm
from .search import ConversationSearch
from .stream import Composer, Message, MessageStream, order_messages
from .typing import TypingPresence


async def _require_group(store, group_id):
    group = await store.get(join_path(GROUPS, group_id))
    if group is None:
        raise NotFoundError("Group not found.")
    return group


async def _require_member(store, group_id):
    member = await MembershipLedger(store, g.user_id).member(group_id)
    if member is None:
        raise PermissionDenied("Join the group to take part in the conversation.")
    return member


def _search_payload(search, messages):
    return {
        "query": search.query,
        "status": search.status,
        "matches": [messages[i].id for i in search.matches],
        "current": messages[search.current].id if search.current is not None else None,
        "highlights": {
            messages[i].id: [
                {"text": segment, "match": matched}
                for segment, matched in search.highlight(messages[i].text)
            ]
            for i in search.matches
        },
    }


@bp.route("/<string:group_id>/messages", methods=["GET"])
@login_required
async def list_messages(group_id):
    """The group's messages in order, with find-in-conversation results for ``q``."""
    store = get_store()
    await _require_group(store, group_id)
    documents = await store.query(
        join_path(GROUPS, group_id, MESSAGES), order_by="createdAt"
    )
    messages = order_messages([Message.from_document(doc) for doc in documents])

    search = ConversationSearch()
    search.update_messages(messages)
    search.set_query(request.args.get("q", ""))
    return jsonify(
        api_response(
            {
                "messages": [message.to_dict() for message in messages],
                "search": _search_payload(search, messages),
            }
        )
    )


@bp.route("/<string:group_id>/messages", methods=["POST"])
@login_required
async def send_message(group_id):
    """Send a message as the caller's nickname in the group."""
    form = MessageForm()
    if not form.validate_on_submit():
        raise ValidationError(form_error(form))

    store = get_store()
    member = await _require_member(store, group_id)
    stream = MessageStream(
        store,
        group_id,
        g.user_id,
        nickname=member.get("nickname") or DEFAULT_NICKNAME,
    )
    message_id = await stream.send(Composer(text=form.text.data or ""))
    if message_id is None:
        return jsonify(api_response(None, "Nothing to send."))
    return jsonify(api_response({"id": message_id}, "Message sent.")), 201


@bp.route("/<string:group_id>/messages/<string:message_id>", methods=["DELETE"])
@login_required
async def delete_message(group_id, message_id):
    """Delete one of the caller's own messages."""
    stream = MessageStream(get_store(), group_id, g.user_id)
    await stream.delete(message_id)
    return jsonify(api_response({"id": message_id}, "Message deleted."))


@bp.route("/<string:group_id>/typing", methods=["GET"])
@login_required
async def typing_users(group_id):
    """Nicknames of the other members currently flagged as typing."""
    documents = await get_store().query(
        join_path(GROUPS, group_id, TYPING), where=[("typing", "==", True)]
    )
    nicknames = sorted(
        doc.get("nickname") or DEFAULT_NICKNAME
        for doc in documents
        if doc["id"] != g.user_id
    )
    return jsonify(api_response({"typing": nicknames}))


@bp.route("/<string:group_id>/typing", methods=["POST"])
@login_required
async def set_typing(group_id):
    """Raise or clear the caller's typing flag."""
    payload = request.get_json(silent=True) or {}
    typing = payload.get("typing")
    if not isinstance(typing, bool):
        raise ValidationError("typing must be true or false.")

    store = get_store()
    member = await _require_member(store, group_id)
    presence = TypingPresence(
        store, group_id, g.user_id, member.get("nickname") or DEFAULT_NICKNAME
    )
    await presence.publish(typing)
    return jsonify(api_response({"typing": typing}))
