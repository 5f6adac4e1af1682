# Overview: Flask API routes for stock movements, ledger reads and stock alerts.

"""
Stock routes.

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- start_date / end_date filtering is inclusive.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import STOCK_LOG_TYPES
from ..services import catalog_service, ledger_service, stock_service
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, validate_adjust_payload, validate_receive_payload
from ..decorators import require_shop_context, require_role
from .errors import DOMAIN_ERRORS, RETRYABLE, conflict_response, domain_error_response


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/movements")
@require_shop_context
def list_movements_route():
    stock_type = request.args.get("type")
    if stock_type and stock_type not in STOCK_LOG_TYPES:
        return jsonify({"error": f"type must be one of {', '.join(STOCK_LOG_TYPES)}"}), 400

    try:
        start = parse_iso_datetime(request.args.get("start_date"))
        end = parse_iso_datetime(request.args.get("end_date"))
    except ValueError:
        return jsonify({"error": "start_date and end_date must be ISO-8601 datetimes"}), 400

    result = ledger_service.get_movements(
        g.shop_id,
        product_id=request.args.get("product_id", type=int),
        type=stock_type,
        reference=request.args.get("reference"),
        start=start,
        end=end,
        page=request.args.get("page", type=int),
        limit=request.args.get("limit", type=int),
    )
    return jsonify(result), 200


@stock_bp.get("/alerts")
@require_shop_context
def low_stock_alerts_route():
    return jsonify(ledger_service.get_low_stock_alerts(g.shop_id)), 200


@stock_bp.get("/levels")
@require_shop_context
def stock_levels_route():
    return jsonify(catalog_service.get_stock_levels(g.shop_id)), 200


@stock_bp.get("/reconcile")
@require_shop_context
@require_role("OWNER", "MANAGER")
def reconcile_route():
    return jsonify(ledger_service.reconcile_shop(g.shop_id)), 200


@stock_bp.post("/adjust")
@require_shop_context
@require_role("OWNER", "MANAGER")
def adjust_stock_route():
    """Signed stock change (damage, expiry, corrections, transfers, manual returns)."""
    try:
        data = validate_adjust_payload(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        result = stock_service.adjust_stock(shop_id=g.shop_id, user_id=g.user_id, **data)
        return jsonify(result), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except RETRYABLE:
        return conflict_response("Stock adjustment")
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/receive")
@require_shop_context
@require_role("OWNER", "MANAGER")
def receive_stock_route():
    """Bulk restock from a delivery."""
    try:
        data = validate_receive_payload(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        entries = stock_service.receive_stock(
            shop_id=g.shop_id,
            items=data["items"],
            user_id=g.user_id,
            reference=data["reference"],
        )
        return jsonify({"movements": entries}), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except RETRYABLE:
        return conflict_response("Stock receive")
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500
