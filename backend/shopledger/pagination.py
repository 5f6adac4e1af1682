# Overview: Page/limit pagination helpers shared by list endpoints.

from __future__ import annotations

import math

from flask import current_app, has_app_context


def clamp_page(page: int | None, limit: int | None) -> tuple[int, int]:
    """Normalize page (>= 1) and limit (1..MAX_PAGE_SIZE, default DEFAULT_PAGE_SIZE)."""
    default_limit, max_limit = 20, 100
    if has_app_context():
        default_limit = current_app.config.get("DEFAULT_PAGE_SIZE", default_limit)
        max_limit = current_app.config.get("MAX_PAGE_SIZE", max_limit)
    page = max(1, page or 1)
    limit = min(max_limit, max(1, limit or default_limit))
    return page, limit


def paginate_query(query, page: int | None, limit: int | None) -> tuple[list, dict]:
    """Run an ordered query for one page; returns (rows, meta)."""
    page, limit = clamp_page(page, limit)
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    meta = {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
        "has_next": page * limit < total,
        "has_prev": page > 1,
    }
    return rows, meta
