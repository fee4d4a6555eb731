# Overview: Flask API routes for products operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import DomainError
from ..models.auth import ROLE_MANAGER, ROLE_OWNER
from ..services import catalog_service
from ..validation import to_int


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    result = catalog_service.list_products(
        category=request.args.get("category"),
        include_archived=request.args.get("include_archived", "false").lower() == "true",
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@products_bp.post("")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def create_product_route():
    """
    Create a product.

    Request body:
    {
        "name": "Glazed tile 60x60",
        "product_type_id": 1,
        "price": "5000.00",
        "cost_price": "3200.00",         (optional)
        "category": "Tiles",             (optional, default General)
        "custom_attributes": {"size": "60x60"}
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        product = catalog_service.create_product(
            name=data.get("name"),
            product_type_id=to_int(data.get("product_type_id"), "product_type_id"),
            price=data.get("price"),
            cost_price=data.get("cost_price"),
            category=data.get("category"),
            custom_attributes=data.get("custom_attributes"),
            description=data.get("description"),
        )
        return jsonify({"product": product.to_dict()}), 201

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    product = catalog_service.get_product(product_id)
    if product is None:
        return jsonify({"error": "Product not found"}), 404
    data = product.to_dict()
    data["stock"] = [record.to_dict() for record in product.stock_records]
    return jsonify({"product": data}), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def archive_product_route(product_id: int):
    """
    Archive (soft-delete) a product.

    Returns 409 while any location still holds stock of it.
    """
    try:
        product = catalog_service.archive_product(product_id)
        return jsonify({"product": product.to_dict(), "message": "Product archived"}), 200

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to archive product")
        return jsonify({"error": "Internal server error"}), 500
