# Overview: Flask API routes for reports operations; parses input and returns JSON responses.

"""
Reporting API routes (read-only, owner/manager).

Date filters accept ISO-8601 ("2025-01-31" or full timestamps). Without a
range the last 30 days are reported; a date-only end covers that whole day.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import DomainError
from ..models.auth import ROLE_MANAGER, ROLE_OWNER
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range_args() -> dict:
    return {
        "start": request.args.get("start") or request.args.get("startDate"),
        "end": request.args.get("end") or request.args.get("endDate"),
        "location_id": request.args.get("location_id", type=int),
    }


@reports_bp.get("/sales-daily")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def daily_sales_route():
    try:
        return jsonify(reporting_service.daily_sales(**_range_args())), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to generate daily sales report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/inventory-valuation")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def inventory_valuation_route():
    try:
        report = reporting_service.inventory_valuation(location_id=request.args.get("location_id", type=int))
        return jsonify(report), 200
    except Exception:
        current_app.logger.exception("Failed to generate inventory valuation report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/profit-margin")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def profit_margin_route():
    try:
        return jsonify(reporting_service.profit_margin(**_range_args())), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to generate profit margin report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/top-products")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def top_products_route():
    try:
        report = reporting_service.top_products(
            **_range_args(),
            limit=request.args.get("limit", 10, type=int),
            by=request.args.get("by", "quantity"),
        )
        return jsonify(report), 200
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to generate top products report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/dashboard")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def dashboard_route():
    try:
        summary = reporting_service.dashboard_summary(location_id=request.args.get("location_id", type=int))
        return jsonify(summary), 200
    except Exception:
        current_app.logger.exception("Failed to generate dashboard summary")
        return jsonify({"error": "Internal server error"}), 500
