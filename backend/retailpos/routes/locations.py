# Overview: Flask API routes for stock locations; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import DomainError
from ..models.auth import ROLE_MANAGER, ROLE_OWNER
from ..services import catalog_service


locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


@locations_bp.get("")
@require_auth
def list_locations_route():
    locations = catalog_service.list_locations()
    return jsonify({"items": [loc.to_dict() for loc in locations], "count": len(locations)}), 200


@locations_bp.post("")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def create_location_route():
    try:
        data = request.get_json(silent=True) or {}
        location = catalog_service.create_location(data.get("name"), data.get("address"))
        return jsonify({"location": location.to_dict()}), 201

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create location")
        return jsonify({"error": "Internal server error"}), 500


@locations_bp.delete("/<int:location_id>")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def delete_location_route(location_id: int):
    """
    Delete an unused location.

    Returns 409 while it holds stock or has movement/sale history.
    """
    try:
        catalog_service.delete_location(location_id)
        return jsonify({"message": "Location deleted"}), 200

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete location")
        return jsonify({"error": "Internal server error"}), 500
