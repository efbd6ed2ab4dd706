"""
FastAPI dependency injection for services and paging parameters.

Provides injectable dependencies for:
- The calculation service (created once in the application lifespan)
- Page requests built from the ``page``, ``size`` and ``sort`` query
  parameters, with a per-endpoint default sort

All dependencies use FastAPI's dependency injection system so tests can
swap them with ``app.dependency_overrides``.
"""

from typing import Callable, Optional

import structlog
from fastapi import Query, Request

from api.src.config import get_settings
from api.src.errors import InvalidSortError
from api.src.models.admission import SORTABLE_FIELDS
from api.src.models.pagination import PageRequest, Sort, SortDirection
from api.src.services.calculation_service import CalculationService

logger = structlog.get_logger(__name__)


# ============================================================================
# DEFAULT SORTS
# ============================================================================

NEWEST_FIRST = Sort(field="criadoEm", direction=SortDirection.DESC)
HIGHEST_SALARY_FIRST = Sort(field="salarioBruto", direction=SortDirection.DESC)


# ============================================================================
# SERVICES
# ============================================================================


def get_calculation_service(request: Request) -> CalculationService:
    """
    Get the calculation service created at startup.

    Args:
        request: Current request

    Returns:
        CalculationService instance

    Raises:
        RuntimeError: If the application has not finished starting
    """
    service = getattr(request.app.state, "calculation_service", None)
    if service is None:
        logger.error("calculation_service_not_initialized")
        raise RuntimeError("Calculation service not initialized")
    return service


# ============================================================================
# PAGING
# ============================================================================


def parse_sort(sort_param: Optional[str], default: Sort) -> Sort:
    """
    Parse and check a sort parameter.

    Args:
        sort_param: "field" or "field,direction"
        default: Sort used when the parameter is absent

    Returns:
        Sort order

    Raises:
        InvalidSortError: Field is not sortable
    """
    sort = Sort.parse(sort_param, default)
    if sort.field not in SORTABLE_FIELDS:
        raise InvalidSortError(sort.field, SORTABLE_FIELDS)
    return sort


def page_request_dependency(default_sort: Sort) -> Callable[..., PageRequest]:
    """
    Build a dependency that reads paging parameters.

    Args:
        default_sort: Sort applied when ``sort`` is omitted

    Returns:
        Dependency callable producing a PageRequest
    """

    def get_page_request(
        page: int = Query(0, ge=0, description="Zero-based page index"),
        size: Optional[int] = Query(None, ge=1, description="Page size"),
        sort: Optional[str] = Query(
            None,
            description="Sort order: field or field,asc|desc",
            examples=["criadoEm,desc"]
        ),
    ) -> PageRequest:
        return PageRequest(
            page=page,
            size=size if size is not None else get_settings().pagination_default_size,
            sort=parse_sort(sort, default_sort),
        )

    return get_page_request


newest_first_page = page_request_dependency(NEWEST_FIRST)
highest_salary_first_page = page_request_dependency(HIGHEST_SALARY_FIRST)
