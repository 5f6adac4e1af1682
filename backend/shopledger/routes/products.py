# Overview: Flask API routes for the product catalog.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import catalog_service
from ..services.catalog_service import CatalogError, ProductLimitError, ProductLookupError
from ..validation import ValidationError, validate_product_payload
from ..decorators import require_shop_context, require_role
from .errors import RETRYABLE, conflict_response


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("")
@require_shop_context
@require_role("OWNER", "MANAGER")
def create_product_route():
    """
    Create a product; a positive opening quantity is logged as INITIAL stock.

    403 when the shop's tier product limit is reached.
    """
    try:
        data = validate_product_payload(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        product = catalog_service.create_product(shop_id=g.shop_id, user_id=g.user_id, **data)
    except ProductLimitError as e:
        return jsonify({"error": str(e), "tier": e.tier, "limit": e.limit}), 403
    except CatalogError as e:
        return jsonify({"error": str(e)}), 400
    except RETRYABLE:
        return conflict_response("Product")
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict()}), 201


@products_bp.get("")
@require_shop_context
def list_products_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    products = catalog_service.list_products(g.shop_id, include_inactive=include_inactive)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.get("/<int:product_id>")
@require_shop_context
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(g.shop_id, product_id)
    except ProductLookupError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("/<int:product_id>/deactivate")
@require_shop_context
@require_role("OWNER", "MANAGER")
def deactivate_product_route(product_id: int):
    try:
        product = catalog_service.deactivate_product(g.shop_id, product_id)
    except ProductLookupError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("/<int:product_id>/reactivate")
@require_shop_context
@require_role("OWNER", "MANAGER")
def reactivate_product_route(product_id: int):
    try:
        product = catalog_service.reactivate_product(g.shop_id, product_id)
    except ProductLookupError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"product": product.to_dict()}), 200
