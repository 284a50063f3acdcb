"""Pagination helpers."""

import math
from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


def paginate(page: int, page_size: int, max_page_size: int = 100) -> tuple[int, int, int]:
    """Clamp page/page_size; return (page, page_size, skip)."""
    page = max(1, page)
    page_size = max(1, min(page_size, max_page_size))
    return page, page_size, (page - 1) * page_size


def build_page(items: list[T], page: int, page_size: int, total: int) -> Page[T]:
    skip = (page - 1) * page_size
    return Page(
        items=items,
        page=page,
        page_size=page_size,
        total=total,
        total_pages=math.ceil(total / page_size) if page_size else 0,
        has_next=skip + len(items) < total,
        has_prev=page > 1,
    )
