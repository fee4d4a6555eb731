# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import DomainError
from ..models.auth import ROLE_MANAGER, ROLE_OWNER
from ..services import stock_ledger_service
from ..validation import decimal_str, to_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
def list_stock_route():
    location_id = request.args.get("location_id", type=int)
    records = stock_ledger_service.list_stock(location_id=location_id)
    return jsonify({"items": [r.to_dict() for r in records], "count": len(records)}), 200


@inventory_bp.post("/movements")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def apply_movement_route():
    """
    Record a manual stock movement.

    Request body:
    {
        "product_id": 1,
        "location_id": 1,
        "change_type": "received" | "adjusted" | "broken" | "initial",
        "change_amount": "25.5",   (signed)
        "notes": "Delivery #42"    (optional)
    }

    Returns:
        201: movement recorded
        400: invalid input
        409: movement would make stock negative
    """
    try:
        data = request.get_json(silent=True) or {}

        movement = stock_ledger_service.apply_movement(
            product_id=to_int(data.get("product_id"), "product_id"),
            location_id=to_int(data.get("location_id"), "location_id"),
            change_type=data.get("change_type"),
            change_amount=data.get("change_amount"),
            actor_id=g.current_user.id,
            notes=data.get("notes"),
        )
        return jsonify({"movement": movement.to_dict()}), 201

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply stock movement")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/movements")
@require_auth
def list_movements_route():
    movements = stock_ledger_service.list_movements(
        product_id=request.args.get("product_id", type=int),
        location_id=request.args.get("location_id", type=int),
        limit=request.args.get("limit", 50, type=int),
    )
    return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200


@inventory_bp.get("/low-stock")
@require_auth
def low_stock_route():
    try:
        records = stock_ledger_service.list_low_stock(
            location_id=request.args.get("location_id", type=int),
            threshold=request.args.get("threshold"),
        )
        return jsonify({"items": [r.to_dict() for r in records], "count": len(records)}), 200

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@inventory_bp.get("/<int:product_id>/<int:location_id>")
@require_auth
def get_quantity_route(product_id: int, location_id: int):
    quantity = stock_ledger_service.get_quantity(product_id, location_id)
    return jsonify({
        "product_id": product_id,
        "location_id": location_id,
        "quantity": decimal_str(quantity),
    }), 200
