"""Routes for the group blueprint."""

from datetime import timedelta

from flask import current_app, g, jsonify, request

from trailsync.auth.decorators import login_required
from trailsync.errors import ValidationError
from trailsync.location.geo import (
    Coordinate,
    bearing,
    distance_between,
    format_distance,
    is_within_radius,
    parse_coordinate_string,
)

from . import bp
from .forms import CreateGroupForm, JoinGroupForm, LocationForm
from .registry import engines


def _engine():
    """The sync engine of the signed-in member."""
    return engines.get(g.member_id)


def _validated(form):
    if not form.validate_on_submit():
        raise ValidationError(form.first_error())
    return form


def _error_response(engine):
    """Render the engine's last recorded error."""
    error = engine.last_error
    if error is None:
        return jsonify({"status": "error", "message": "Unknown error."}), 500
    return (
        jsonify(
            {
                "status": "error",
                "kind": error.kind.value,
                "message": error.message,
            }
        ),
        error.status_code,
    )


def _stale_after():
    seconds = current_app.config.get("MEMBER_STALE_AFTER_SECONDS") or 0
    return timedelta(seconds=seconds) if seconds > 0 else None


def _origin(engine, members):
    """Reference point for distances: ``?origin=lat,lon`` or the caller's own fix."""
    raw = request.args.get("origin")
    if raw is not None:
        origin = parse_coordinate_string(raw)
        if origin is None:
            raise ValidationError(f"Invalid origin coordinate: {raw}")
        return origin
    for location in members:
        if location.member_id == engine.member_id:
            return location.coordinate
    return None


def _radius():
    raw = request.args.get("within")
    if raw is None:
        return None
    try:
        radius = float(raw)
    except ValueError:
        raise ValidationError(f"Invalid radius: {raw}")
    if not radius >= 0:
        raise ValidationError(f"Invalid radius: {raw}")
    return radius


def _member_entry(location, origin):
    entry = location.to_dict()
    if origin is not None:
        meters = distance_between(origin, location.coordinate)
        entry["distance_m"] = round(meters, 1)
        entry["distance"] = format_distance(meters)
        entry["bearing"] = round(bearing(origin, location.coordinate), 1)
    return entry


@bp.after_request
def release_idle_engine(response):
    """Close the member's engine when the request left it with nothing to keep."""
    member_id = g.get("member_id")
    if member_id is not None:
        engines.release_if_idle(member_id)
    return response


@bp.route("/", methods=["POST"])
@login_required
def create_group():
    """Create a group led by the signed-in member."""
    form = _validated(CreateGroupForm())
    engine = _engine()
    group = engine.create_group(form.name.data)
    if group is None:
        return _error_response(engine)
    return jsonify({"status": "success", "group": group.to_dict()}), 201


@bp.route("/join", methods=["POST"])
@login_required
def join_group():
    """Join a group by its id, typically scanned from a QR code."""
    form = _validated(JoinGroupForm())
    engine = _engine()
    group = engine.join_group(form.group_id.data)
    if group is None:
        return _error_response(engine)
    return jsonify({"status": "success", "group": group.to_dict()})


@bp.route("/leave", methods=["POST"])
@login_required
def leave_group():
    """Leave the active group."""
    engine = _engine()
    if not engine.leave_group():
        return _error_response(engine)
    return jsonify({"status": "success"})


@bp.route("/active", methods=["GET"])
@login_required
def view_active_group():
    """Show the active group and the positions of its members.

    With an origin (``?origin=lat,lon``, else the caller's own position) each
    member also gets a distance and a compass bearing, and ``?within=<meters>``
    keeps only members inside that radius.
    """
    radius = _radius()
    engine = _engine()
    group = engine.active_group
    members = engine.member_positions(max_age=_stale_after())
    origin = _origin(engine, members)
    if origin is not None and radius is not None:
        members = [
            location
            for location in members
            if is_within_radius(location.coordinate, origin, radius)
        ]
    return jsonify(
        {
            "status": "success",
            "state": engine.state.value,
            "group": group.to_dict() if group else None,
            "origin": origin._asdict() if origin is not None else None,
            "members": [_member_entry(location, origin) for location in members],
            "is_tracking": engine.is_tracking,
            "is_updating_location": engine.is_updating_location,
            "error": engine.error_message,
        }
    )


@bp.route("/active", methods=["DELETE"])
@login_required
def delete_active_group():
    """Delete the active group; leader only."""
    engine = _engine()
    if not engine.delete_group():
        return _error_response(engine)
    return jsonify({"status": "success"})


@bp.route("/active/refresh", methods=["POST"])
@login_required
def refresh_member_locations():
    """Re-read member positions without waiting for the live listener."""
    engine = _engine()
    if not engine.refresh_member_locations():
        return _error_response(engine)
    return jsonify({"status": "success"})


@bp.route("/<string:group_id>", methods=["GET"])
@login_required
def view_group(group_id):
    """Fetch a group without making it active."""
    group = _engine().get_group(group_id)
    return jsonify({"status": "success", "group": group.to_dict()})


@bp.route("/location", methods=["POST"])
@login_required
def submit_location():
    """Feed a device sample into the debounced publish path."""
    form = _validated(LocationForm())
    engine = _engine()
    if not engine.is_tracking and not engine.start_location_tracking():
        return _error_response(engine)
    accepted = engine.location_source.push(
        Coordinate(form.latitude.data, form.longitude.data)
    )
    return jsonify({"status": "success", "accepted": accepted}), 202


@bp.route("/location/now", methods=["POST"])
@login_required
def update_location_now():
    """Write a location immediately, bypassing the debounce."""
    form = _validated(LocationForm())
    engine = _engine()
    if not engine.update_location(form.latitude.data, form.longitude.data):
        return _error_response(engine)
    return jsonify({"status": "success"})


@bp.route("/tracking", methods=["POST"])
@login_required
def start_tracking():
    """Start consuming posted locations."""
    engine = _engine()
    if not engine.start_location_tracking():
        return _error_response(engine)
    return jsonify({"status": "success", "is_tracking": True})


@bp.route("/tracking", methods=["DELETE"])
@login_required
def stop_tracking():
    """Stop consuming posted locations."""
    _engine().stop_location_tracking()
    return jsonify({"status": "success", "is_tracking": False})


@bp.route("/error/clear", methods=["POST"])
@login_required
def clear_error():
    """Dismiss the last error."""
    _engine().clear_error()
    return jsonify({"status": "success"})
