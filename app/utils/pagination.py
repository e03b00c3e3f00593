"""
Offset pagination for list endpoints
"""
from typing import Generic, List, TypeVar
from pydantic import BaseModel, Field
from fastapi import Query

T = TypeVar('T')

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


class PaginationParams:
    """
    skip/limit query parameters, used as `pagination: PaginationParams = Depends()`
    """
    def __init__(
        self,
        skip: int = Query(0, ge=0, description="Number of items to skip"),
        limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Page size (max 200)")
    ):
        self.skip = skip
        self.limit = limit


class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int = Field(description="Total number of matching items")
    skip: int
    limit: int
    has_more: bool


def paginate_query(query, skip: int = 0, limit: int = DEFAULT_PAGE_SIZE):
    """
    Returns:
        tuple: (items on this page, total matching rows)
    """
    total = query.count()
    items = query.offset(skip).limit(limit).all()
    return items, total


def create_paginated_response(items: list, total: int, skip: int, limit: int) -> dict:
    return {
        "items": items,
        "total": total,
        "skip": skip,
        "limit": limit,
        "has_more": skip + len(items) < total
    }
