from __future__ import annotations

from typing import Any

from .models import PAYMENT_METHODS, STOCK_LOG_TYPES
from .time_utils import parse_iso_datetime
from .services.sales_service import CartLine

# Maximum price / amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT_CENTS = 999_999_999

VOID_REASON_MIN = 5
VOID_REASON_MAX = 500
LOCAL_ID_MAX = 64


class ValidationError(ValueError):
    """400-level input problem."""


def _coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def require_int(
    payload: dict,
    key: str,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
    required: bool = True,
    default: int | None = None,
) -> int | None:
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return default
    number = _coerce_int(key, value)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    if maximum is not None and number > maximum:
        raise ValidationError(f"{key} must be <= {maximum}")
    return number


def optional_str(payload: dict, key: str, *, max_length: int) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    s = str(value).strip()
    if len(s) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return s or None


def _optional_datetime(payload: dict, key: str):
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an ISO-8601 datetime string")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime string")


def validate_sale_payload(payload: dict) -> dict:
    """
    {
      "items": [{"product_id": int, "quantity": int >= 1, "discount_cents": int >= 0}, ...],
      "payment_method": one of PAYMENT_METHODS,
      "amount_paid_cents": int >= 0,
      "discount_cents": int >= 0 (optional),
      "customer_id": int (optional),
      "local_id": str <= 64 (optional, offline sync id),
      "offline_at": ISO-8601 datetime (optional, when the device rang it up)
    }
    """
    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    lines = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        lines.append(
            CartLine(
                product_id=require_int(raw, "product_id", minimum=1),
                quantity=require_int(raw, "quantity", minimum=1),
                discount_cents=require_int(
                    raw, "discount_cents", minimum=0, maximum=MAX_AMOUNT_CENTS, required=False, default=0
                ),
            )
        )

    payment_method = payload.get("payment_method")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")

    return {
        "items": lines,
        "payment_method": payment_method,
        "amount_paid_cents": require_int(payload, "amount_paid_cents", minimum=0, maximum=MAX_AMOUNT_CENTS),
        "discount_cents": require_int(
            payload, "discount_cents", minimum=0, maximum=MAX_AMOUNT_CENTS, required=False, default=0
        ),
        "customer_id": require_int(payload, "customer_id", minimum=1, required=False),
        "local_id": optional_str(payload, "local_id", max_length=LOCAL_ID_MAX),
        "offline_at": _optional_datetime(payload, "offline_at"),
    }


def validate_void_payload(payload: dict) -> str:
    reason = payload.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("reason required")
    reason = reason.strip()
    if not (VOID_REASON_MIN <= len(reason) <= VOID_REASON_MAX):
        raise ValidationError(f"reason must be {VOID_REASON_MIN}-{VOID_REASON_MAX} characters")
    return reason


def validate_product_payload(payload: dict) -> dict:
    name = optional_str(payload, "name", max_length=255)
    if not name:
        raise ValidationError("name is required")
    track_stock = payload.get("track_stock", True)
    if not isinstance(track_stock, bool):
        raise ValidationError("track_stock must be a boolean")
    return {
        "name": name,
        "sku": optional_str(payload, "sku", max_length=64),
        "barcode": optional_str(payload, "barcode", max_length=64),
        "category": optional_str(payload, "category", max_length=120),
        "unit": optional_str(payload, "unit", max_length=32) or "each",
        "sell_price_cents": require_int(payload, "sell_price_cents", minimum=0, maximum=MAX_AMOUNT_CENTS),
        "cost_price_cents": require_int(
            payload, "cost_price_cents", minimum=0, maximum=MAX_AMOUNT_CENTS, required=False, default=0
        ),
        "quantity": require_int(payload, "quantity", minimum=0, required=False, default=0),
        "reorder_at": require_int(payload, "reorder_at", minimum=0, required=False, default=10),
        "track_stock": track_stock,
    }


def validate_adjust_payload(payload: dict) -> dict:
    stock_type = payload.get("type")
    if stock_type not in STOCK_LOG_TYPES or stock_type in ("SALE", "INITIAL"):
        raise ValidationError("type must be a manual stock movement type")
    quantity = require_int(payload, "quantity")
    if quantity == 0:
        raise ValidationError("quantity must be non-zero")
    return {
        "product_id": require_int(payload, "product_id", minimum=1),
        "type": stock_type,
        "quantity_delta": quantity,
        "note": optional_str(payload, "note", max_length=500),
        "reference": optional_str(payload, "reference", max_length=64),
    }


def validate_receive_payload(payload: dict) -> dict:
    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    lines = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        lines.append(
            {
                "product_id": require_int(raw, "product_id", minimum=1),
                "quantity": require_int(raw, "quantity", minimum=1),
                "note": optional_str(raw, "note", max_length=500),
            }
        )
    return {"items": lines, "reference": optional_str(payload, "reference", max_length=64)}
