# Overview: Shared translation of service exceptions into JSON error responses.

from flask import current_app, jsonify
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..services.concurrency import ConcurrencyConflict
from ..services.sales_service import (
    SaleError,
    ProductNotFoundError,
    SaleNotFoundError,
    AlreadyVoidedError,
    InvalidSaleStateError,
)
from ..services.stock_service import StockError, StockProductNotFoundError

RETRYABLE = (ConcurrencyConflict, OperationalError, StaleDataError)


def domain_error_response(e: Exception):
    """Map a sale/stock domain error to (json, status)."""
    if isinstance(e, (ProductNotFoundError, SaleNotFoundError, StockProductNotFoundError)):
        status = 404
    elif isinstance(e, (AlreadyVoidedError, InvalidSaleStateError)):
        status = 409
    else:
        status = 400
    return jsonify({"error": str(e), "details": getattr(e, "details", {})}), status


def conflict_response(action: str):
    current_app.logger.warning("%s gave up after repeated conflicts", action)
    return jsonify({"error": f"{action} conflicted with concurrent activity, retry", "retryable": True}), 503


DOMAIN_ERRORS = (SaleError, StockError)
