"""Routes for the group blueprint."""

from flask import current_app, g, jsonify, request

from neartalk.auth.decorators import login_required
from neartalk.chat.unread import UnreadTracker
from neartalk.errors import NotFoundError, ValidationError
from neartalk.extensions import get_store
from neartalk.geo.location import location_from_payload, location_to_payload
from neartalk.utils import api_response, avatar_options, form_error

from . import bp
from .directory import GroupDirectory
from .forms import CreateGroupForm, JoinGroupForm
from .membership import MembershipLedger
from .models import parse_coordinate


def _is_truthy(value):
    return (value or "").lower() in ("1", "true", "yes", "on")


def _location(lat, lon, accuracy):
    return location_from_payload(
        {
            "latitude": parse_coordinate(lat),
            "longitude": parse_coordinate(lon),
            "accuracy": accuracy,
        }
    )


def _request_location():
    """The caller's position from the ``lat``/``lon``/``accuracy`` query args."""
    return _location(
        request.args.get("lat"), request.args.get("lon"), request.args.get("accuracy")
    )


def _directory():
    return GroupDirectory(
        get_store(), g.user_id, current_app.config["DISCOVERY_RADIUS_KM"]
    )


def _ledger():
    return MembershipLedger(
        get_store(), g.user_id, avatar_base_url=current_app.config["AVATAR_BASE_URL"]
    )


@bp.route("/", methods=["GET"])
@login_required
async def discover_groups():
    """List groups near the caller, or every group with ``all=1``."""
    location = _request_location()
    view = await _directory().load(location)
    show_all = _is_truthy(request.args.get("all"))
    groups = view.visible(show_all=show_all, query=request.args.get("q", ""))
    return jsonify(
        api_response(
            {
                "location": location_to_payload(location),
                "canToggleShowAll": view.can_toggle_show_all,
                "showAll": show_all,
                "groups": [group.to_dict() for group in groups],
            }
        )
    )


@bp.route("/search", methods=["GET"])
@login_required
async def search_groups():
    """Search every group by name, joined groups listed apart from the rest."""
    location = _request_location()
    results = await _directory().search(
        request.args.get("q", ""),
        location,
        nearby_only=_is_truthy(request.args.get("nearby")),
    )
    return jsonify(
        api_response(
            {
                "query": results.query,
                "joined": [group.to_dict() for group in results.joined],
                "discover": [group.to_dict() for group in results.discover],
            }
        )
    )


@bp.route("/mine", methods=["GET"])
@login_required
async def my_groups():
    """The caller's joined groups with unread counts."""
    tracker = UnreadTracker(get_store(), g.user_id)
    await tracker.refresh()
    groups = tracker.filter(request.args.get("q", ""))
    return jsonify(api_response({"groups": [group.to_dict() for group in groups]}))


@bp.route("/avatars", methods=["GET"])
@login_required
def avatar_choices():
    """Avatar previews for a group name, one per style."""
    options = avatar_options(
        request.args.get("name", "").strip(), current_app.config["AVATAR_BASE_URL"]
    )
    return jsonify(api_response({"avatars": options}))


@bp.route("/", methods=["POST"])
@login_required
async def create_group():
    """Create a group at the submitted position and join it."""
    form = CreateGroupForm()
    if not form.validate_on_submit():
        raise ValidationError(form_error(form))

    location = _location(form.latitude.data, form.longitude.data, form.accuracy.data)
    group = await _ledger().create_group(
        form.name.data, form.nickname.data, location, form.avatar_style.data
    )
    current_app.logger.info(f"Group {group.id} created by {g.user_id}")
    return jsonify(api_response(group.to_dict(), "Group created.")), 201


@bp.route("/<string:group_id>/join", methods=["POST"])
@login_required
async def join_group(group_id):
    """Join a group under the submitted nickname."""
    form = JoinGroupForm()
    if not form.validate_on_submit():
        raise ValidationError(form_error(form))

    created = await _ledger().join(group_id, form.nickname.data)
    message = "Joined group." if created else "You are already a member."
    return jsonify(api_response({"groupId": group_id, "joined": created}, message))


@bp.route("/<string:group_id>/leave", methods=["POST"])
@login_required
async def leave_group(group_id):
    """Leave a group."""
    await _ledger().leave(group_id)
    return jsonify(api_response({"groupId": group_id}, "You left the group."))


@bp.route("/<string:group_id>/seen", methods=["POST"])
@login_required
async def mark_seen(group_id):
    """Advance the caller's read watermark for a joined group."""
    if await _ledger().member(group_id) is None:
        raise NotFoundError("You are not a member of this group.")
    tracker = UnreadTracker(get_store(), g.user_id)
    tracker.open_group(group_id)
    await tracker.settle()
    return jsonify(api_response({"groupId": group_id}))
