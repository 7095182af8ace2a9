"""
Database Pagination Utilities
==============================
Helpers for consistent page/size pagination across repositories.

- Pages are zero-based (page 0 is the first page)
- Default size: 20
- Maximum size: 500
"""

from dataclasses import dataclass
from typing import Any

DEFAULT_SIZE = 20
MAX_SIZE = 500
MIN_SIZE = 1
MIN_PAGE = 0


@dataclass
class PageRequest:
    """Validated page/size parameters."""

    page: int
    size: int

    @classmethod
    def of(cls, page: int | None = None, size: int | None = None) -> "PageRequest":
        """
        Create validated pagination parameters from request inputs.

        Raises:
            ValueError: If page or size are out of valid ranges
        """
        validated_page = MIN_PAGE if page is None else page
        if validated_page < MIN_PAGE:
            raise ValueError(f"Page must be at least {MIN_PAGE}")

        validated_size = DEFAULT_SIZE if size is None else size
        if validated_size < MIN_SIZE:
            raise ValueError(f"Size must be at least {MIN_SIZE}")
        if validated_size > MAX_SIZE:
            raise ValueError(f"Size cannot exceed {MAX_SIZE}")

        return cls(page=validated_page, size=validated_size)

    @property
    def limit(self) -> int:
        return self.size

    @property
    def offset(self) -> int:
        return self.page * self.size


@dataclass
class Page:
    """Standard paginated response structure."""

    items: list[Any]
    total: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        if self.size == 0:
            return 0
        return (self.total + self.size - 1) // self.size  # Ceiling division

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON responses."""
        return {
            "items": [item.to_dict() if hasattr(item, "to_dict") else item for item in self.items],
            "pagination": {
                "page": self.page,
                "size": self.size,
                "total": self.total,
                "total_pages": self.total_pages,
                "has_next": self.has_next,
            },
        }
