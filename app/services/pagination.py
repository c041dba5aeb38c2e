"""
Pagination helpers shared by the order and stock read paths.
"""

import math
from dataclasses import dataclass, field
from typing import Generic, List, TypeVar

from app.core.exceptions import AppError

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of results plus the metadata clients need to walk the rest."""
    items: List[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def validate_page(page: int, limit: int, max_limit: int) -> None:
    if page < 1:
        raise AppError("Page must be at least 1", status_code=400, error_code="INVALID_PAGINATION")
    if limit < 1 or limit > max_limit:
        raise AppError(
            f"Limit must be between 1 and {max_limit}",
            status_code=400,
            error_code="INVALID_PAGINATION",
        )
