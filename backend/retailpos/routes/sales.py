# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales API Routes

A sale is posted in one request: the cart is validated, then the sale, its
items and the stock decrements are committed together.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import DomainError
from ..services import return_service, sales_service
from ..validation import to_int


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Record a sale.

    Request body:
    {
        "location_id": 1,
        "items": [{"product_id": 3, "quantity": "2", "price": "5000.00"}],
        "customer_name": "Ada",          (optional, default Walk-in Customer)
        "customer_phone": "+234...",     (optional)
        "payment_method": "cash",        (cash | bank_transfer | pos | card)
        "discount_type": "percentage",   (optional: amount | percentage)
        "discount_value": "15"
    }

    Returns:
        201: sale with items
        400: invalid cart
        409: insufficient stock (nothing recorded)
    """
    try:
        data = request.get_json(silent=True) or {}

        sale = sales_service.create_sale(
            location_id=to_int(data.get("location_id"), "location_id"),
            items=data.get("items") or [],
            actor_id=g.current_user.id,
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            payment_method=data.get("payment_method") or "cash",
            discount_type=data.get("discount_type"),
            discount_value=data.get("discount_value", 0),
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    try:
        sales = sales_service.list_sales(
            location_id=request.args.get("location_id", type=int),
            start=request.args.get("start"),
            end=request.args.get("end"),
            limit=request.args.get("limit", 50, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({
            "items": [s.to_dict(include_items=False) for s in sales],
            "count": len(sales),
        }), 200

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        data = sale.to_dict()
        data["returns"] = [r.to_dict(include_items=False) for r in sale.returns]
        return jsonify({"sale": data}), 200

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@sales_bp.get("/<int:sale_id>/returnable")
@require_auth
def returnable_items_route(sale_id: int):
    try:
        items = return_service.get_returnable_items(sale_id)
        return jsonify({"sale_id": sale_id, "items": items}), 200

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
