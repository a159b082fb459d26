"""
Pagination Utility Module

Standard pagination for every list endpoint. Responses carry

    {"total": int, "page": int, "limit": int, "total_pages": int}

next to the page of items.
"""
from typing import List, Any, Optional
from pydantic import BaseModel
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10


class PaginationMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


def normalize_page(page: Optional[int], limit: Optional[int]) -> tuple:
    """Clamp page to >= 1 and limit to 1..MAX_PAGE_SIZE"""
    page = max(1, page or 1)
    limit = DEFAULT_PAGE_SIZE if limit is None else limit
    limit = max(1, min(MAX_PAGE_SIZE, limit))
    return page, limit


def build_pagination_meta(total: int, page: int, limit: int) -> PaginationMeta:
    total_pages = (total + limit - 1) // limit if total > 0 else 0
    return PaginationMeta(total=total, page=page, limit=limit, total_pages=total_pages)


async def paginate(
    db: AsyncSession,
    query: Select,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    count_query: Optional[Select] = None
) -> dict:
    """
    Apply pagination to a SQLAlchemy query.

    Args:
        db: Database session
        query: Base select, already filtered and ordered
        page: Page number (1-indexed)
        limit: Items per page (clamped to 1..100)
        count_query: Optional custom count query

    Returns:
        {"items": [...ORM objects...], "pagination": PaginationMeta}
    """
    page, limit = normalize_page(page, limit)

    if count_query is None:
        count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar() or 0

    result = await db.execute(query.offset((page - 1) * limit).limit(limit))
    items: List[Any] = list(result.scalars().all())

    return {
        "items": items,
        "pagination": build_pagination_meta(total, page, limit),
    }
