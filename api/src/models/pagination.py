"""
Paging and sorting models shared by the list endpoints.

A sort parameter is written ``field`` or ``field,direction``; any
direction other than asc/desc falls back to descending without error.
"""

import math
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, token: Optional[str]) -> "SortDirection":
        """Parse a direction token, falling back to DESC."""
        if token:
            try:
                return cls(token.strip().lower())
            except ValueError:
                pass
        return cls.DESC


class Sort(BaseModel):
    """Single-property sort order."""
    field: str
    direction: SortDirection = SortDirection.DESC

    @classmethod
    def parse(cls, sort_param: Optional[str], default: "Sort") -> "Sort":
        """
        Build a Sort from a query parameter.

        Args:
            sort_param: "field" or "field,direction" (None/blank uses default)
            default: Sort used when no parameter is given

        Returns:
            Parsed sort order
        """
        if sort_param is None or not sort_param.strip():
            return default

        parts = sort_param.split(",")
        field = parts[0].strip()
        direction = SortDirection.parse(parts[1]) if len(parts) > 1 else SortDirection.DESC
        return cls(field=field, direction=direction)

    def __str__(self) -> str:
        return f"{self.field},{self.direction.value}"

    model_config = {"frozen": True}


class PageRequest(BaseModel):
    """Requested page: zero-based index, size and sort order."""
    page: int = Field(0, ge=0)
    size: int = Field(20, ge=1)
    sort: Sort

    @property
    def offset(self) -> int:
        return self.page * self.size

    model_config = {"frozen": True}


class Page(BaseModel, Generic[T]):
    """One page of results plus paging metadata."""
    content: List[T]
    total_elements: int = Field(..., ge=0, alias="totalElements")
    total_pages: int = Field(..., ge=0, alias="totalPages")
    number: int = Field(..., ge=0)
    size: int = Field(..., ge=1)
    number_of_elements: int = Field(..., ge=0, alias="numberOfElements")
    first: bool
    last: bool
    empty: bool
    sort: str

    @classmethod
    def of(cls, content: List[T], page_request: PageRequest, total: int) -> "Page[T]":
        total_pages = math.ceil(total / page_request.size) if total else 0
        return cls(
            content=content,
            total_elements=total,
            total_pages=total_pages,
            number=page_request.page,
            size=page_request.size,
            number_of_elements=len(content),
            first=page_request.page == 0,
            last=page_request.page + 1 >= total_pages,
            empty=not content,
            sort=str(page_request.sort),
        )

    model_config = {"populate_by_name": True}
