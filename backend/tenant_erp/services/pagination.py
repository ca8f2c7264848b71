"""Page/limit pagination for list endpoints."""
from __future__ import annotations

import math
from typing import Any

from sqlalchemy.orm import Query

MAX_PAGE_SIZE = 100


def paginate(query: Query, *, page: int = 1, limit: int = 20) -> tuple[list[Any], int]:
    page = max(1, int(page))
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, total


def page_meta(*, total: int, page: int, limit: int) -> dict[str, int]:
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))
    return {
        "total": total,
        "page": max(1, int(page)),
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }
