# Overview: Request decorators that establish shop (tenant) context and gate roles.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import Shop

ROLES = ("OWNER", "MANAGER", "CASHIER")


def _header_int(name: str) -> int | None:
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def require_shop_context(f):
    """
    Establish tenant context from the identity headers set by the auth gateway.

    Authentication happens upstream; these values are trusted as already
    verified and shop-scoped. Sets:
    - g.shop: the active Shop
    - g.shop_id: its id
    - g.user_id: acting staff member (None for shop-level/owner tokens)
    - g.role: OWNER, MANAGER or CASHIER

    Returns 401 without a shop id, 404 for an unknown or inactive shop.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        shop_id = _header_int("X-Shop-Id")
        if shop_id is None:
            return jsonify({"error": "Shop context required"}), 401

        shop = db.session.query(Shop).filter_by(id=shop_id, is_active=True).first()
        if shop is None:
            return jsonify({"error": "Shop not found"}), 404

        role = (request.headers.get("X-User-Role") or "OWNER").upper()
        if role not in ROLES:
            return jsonify({"error": "Unknown role"}), 401

        g.shop = shop
        g.shop_id = shop.id
        g.user_id = _header_int("X-User-Id")
        g.role = role

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require one of the given roles (use after @require_shop_context)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "shop_id"):
                return jsonify({"error": "Shop context required"}), 401
            if g.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator
