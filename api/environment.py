# FILE: api/environment.py

from flask import Blueprint, current_app, request, jsonify
from pydantic import ValidationError

from dependencies import get_quest_service
from models import Location
from .error_utils import bad_request_error, handle_exception

environment_bp = Blueprint('environment_bp', __name__)


@environment_bp.route('/snapshot', methods=['GET'])
def get_snapshot():
    """Returns the normalized weather and air-quality snapshot for a coordinate pair."""
    lat = request.args.get('lat')
    lon = request.args.get('lon')
    if not lat or not lon:
        return bad_request_error("Missing latitude or longitude parameters")
    try:
        location = Location(lat=float(lat), lng=float(lon))
    except (ValueError, ValidationError):
        return bad_request_error("Latitude and longitude must be valid coordinates")

    try:
        service = current_app.extensions.get('quest_service') or get_quest_service()
        snapshot = service.adapter.get_snapshot(location)
        return jsonify(snapshot.to_dict()), 200
    except Exception as e:
        return handle_exception(e, "environment snapshot endpoint")
