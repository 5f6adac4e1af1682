# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes (create, void, lookups, daily summary)."""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service, reporting_service
from ..time_utils import parse_iso_date, parse_iso_datetime
from ..validation import ValidationError, validate_sale_payload, validate_void_payload
from ..decorators import require_shop_context, require_role
from .errors import DOMAIN_ERRORS, RETRYABLE, conflict_response, domain_error_response


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_shop_context
def create_sale_route():
    """
    Create a completed sale from a cart.

    Body: items, payment_method, amount_paid_cents, discount_cents?, customer_id?,
    local_id?, offline_at?

    Offline uploads are idempotent on local_id: a repeated upload answers with
    the sale stored the first time.
    """
    try:
        data = validate_sale_payload(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        sale = sales_service.create_sale(
            g.shop_id,
            data["items"],
            data["payment_method"],
            data["amount_paid_cents"],
            discount_cents=data["discount_cents"],
            user_id=g.user_id,
            customer_id=data["customer_id"],
            local_id=data["local_id"],
            offline_at=data["offline_at"],
        )
        return jsonify({"sale": sale.to_dict(), "message": "Sale completed successfully"}), 201

    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except RETRYABLE:
        return conflict_response("Sale")
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_shop_context
def list_sales_route():
    try:
        start = parse_iso_datetime(request.args.get("start_date"))
        end = parse_iso_datetime(request.args.get("end_date"))
    except ValueError:
        return jsonify({"error": "start_date and end_date must be ISO-8601 datetimes"}), 400

    result = sales_service.list_sales(
        g.shop_id,
        status=request.args.get("status"),
        payment_method=request.args.get("payment_method"),
        user_id=request.args.get("user_id", type=int),
        start=start,
        end=end,
        page=request.args.get("page", type=int),
        limit=request.args.get("limit", type=int),
    )
    return jsonify(result), 200


@sales_bp.get("/summary/daily")
@require_shop_context
def daily_summary_route():
    try:
        day = parse_iso_date(request.args.get("date"))
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400

    return jsonify(reporting_service.get_daily_summary(g.shop_id, day)), 200


@sales_bp.get("/receipt/<string:receipt_number>")
@require_shop_context
def get_sale_by_receipt_route(receipt_number: str):
    try:
        sale = sales_service.get_sale_by_receipt(g.shop_id, receipt_number)
    except sales_service.SaleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.get("/<int:sale_id>")
@require_shop_context
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(g.shop_id, sale_id)
    except sales_service.SaleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.post("/<int:sale_id>/void")
@require_shop_context
@require_role("OWNER", "MANAGER")
def void_sale_route(sale_id: int):
    """
    Void a completed sale and restore its stock.

    Available to: owner, manager
    """
    try:
        reason = validate_void_payload(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        sale = sales_service.void_sale(
            sale_id=sale_id,
            shop_id=g.shop_id,
            user_id=g.user_id,
            reason=reason,
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except RETRYABLE:
        return conflict_response("Void")
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": "Internal server error"}), 500
