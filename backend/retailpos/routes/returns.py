# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

"""
Return Processing API Routes

DESIGN:
- Create a return (with its lines) against an original sale; stock comes
  back immediately
- Manager approval/rejection workflow; rejection takes the stock out again
- Complete returns once the refund or exchange is handed over

SECURITY:
- Any authenticated user can create and view returns
- Owner/manager role required for approve/reject/complete
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import DomainError
from ..models.auth import ROLE_MANAGER, ROLE_OWNER
from ..services import return_service
from ..validation import to_int


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


# =============================================================================
# RETURN CREATION
# =============================================================================

@returns_bp.post("")
@require_auth
def create_return_route():
    """
    Create a return against a sale.

    Request body:
    {
        "sale_id": 123,
        "return_type": "REFUND" | "EXCHANGE",
        "refund_method": "CASH",          (REFUND only)
        "reason": "Wrong colour",
        "notes": "...",
        "items": [
            {
                "sale_item_id": 456,
                "quantity": "2",
                "condition": "PERFECT",     (optional)
                "location_id": 1,           (optional, defaults to sale location)
                "refund_amount": "100.00",  (optional override)
                "exchange_product_id": 9    (EXCHANGE only)
            }
        ]
    }

    Returns:
        201: return created (PENDING)
        400: invalid input
        404: sale not found
        409: over-return
    """
    try:
        data = request.get_json(silent=True) or {}

        # Owners and managers may settle a return in one step
        auto_approve = bool(data.get("auto_approve")) and g.current_user.role in (ROLE_OWNER, ROLE_MANAGER)

        return_doc = return_service.create_return(
            sale_id=to_int(data.get("sale_id"), "sale_id"),
            return_type=data.get("return_type"),
            items=data.get("items") or [],
            actor_id=g.current_user.id,
            reason=data.get("reason"),
            refund_method=data.get("refund_method"),
            notes=data.get("notes"),
            auto_approve=auto_approve,
        )
        return jsonify({"return": return_doc.to_dict()}), 201

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@returns_bp.get("")
@require_auth
def list_returns_route():
    try:
        returns = return_service.list_returns(
            status=request.args.get("status"),
            sale_id=request.args.get("sale_id", type=int),
            limit=request.args.get("limit", 50, type=int),
        )
        return jsonify({
            "items": [r.to_dict(include_items=False) for r in returns],
            "count": len(returns),
        }), 200

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@returns_bp.get("/<int:return_id>")
@require_auth
def get_return_route(return_id: int):
    try:
        return_doc = return_service.get_return(return_id)
        return jsonify({"return": return_doc.to_dict()}), 200

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


# =============================================================================
# APPROVAL WORKFLOW
# =============================================================================

@returns_bp.post("/<int:return_id>/approve")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def approve_return_route(return_id: int):
    try:
        return_doc = return_service.approve_return(return_id, g.current_user.id)
        return jsonify({"return": return_doc.to_dict()}), 200

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/reject")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def reject_return_route(return_id: int):
    """
    Reject a pending return.

    Request body: {"rejection_reason": "Item used"}   (optional)

    Returns 409 when the returned goods have been resold in the meantime.
    """
    try:
        data = request.get_json(silent=True) or {}
        return_doc = return_service.reject_return(
            return_id,
            g.current_user.id,
            rejection_reason=data.get("rejection_reason") or data.get("reason"),
        )
        return jsonify({"return": return_doc.to_dict()}), 200

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/complete")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def complete_return_route(return_id: int):
    try:
        return_doc = return_service.complete_return(return_id, g.current_user.id)
        return jsonify({"return": return_doc.to_dict()}), 200

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete return")
        return jsonify({"error": "Internal server error"}), 500
