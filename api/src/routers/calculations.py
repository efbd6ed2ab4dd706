"""
Calculations router.

Provides REST API endpoints for:
- Creating an admission calculation enriched with its ViaCEP address
- Listing stored calculations (paged and sorted)
- Filtering by hire-date range and by minimum gross salary
- Fetching a single stored calculation

Errors are rendered by the application exception handlers into the
ErrorResponse envelope.
"""

from datetime import date
from decimal import Decimal

import structlog
from fastapi import APIRouter, Depends, Query, status

from api.src.dependencies import (
    get_calculation_service,
    highest_salary_first_page,
    newest_first_page,
)
from api.src.models.admission import (
    MAX_SALARY_DIGITS, AdmissionRecord, AdmissionRequest, AdmissionResponse
)
from api.src.models.errors import ErrorResponse
from api.src.models.pagination import Page, PageRequest
from api.src.services.calculation_service import CalculationService

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/calculos",
    tags=["Calculations"],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        500: {"model": ErrorResponse, "description": "Internal Server Error"},
    }
)


# ============================================================================
# COMMANDS
# ============================================================================


@router.post(
    "",
    response_model=AdmissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Calculate Admission",
    description="""
    Compute tenure and 35% of the gross salary, persist the result and
    enrich it with the address of the given CEP.

    **Error Responses:**
    - 400: Validation error or malformed body
    - 422: ViaCEP has no address for the CEP (record is still stored)
    - 502: ViaCEP call failed
    - 504: ViaCEP did not answer in time
    """,
    responses={
        422: {"model": ErrorResponse, "description": "API Error"},
        502: {"model": ErrorResponse, "description": "Upstream Service Error"},
        504: {"model": ErrorResponse, "description": "Upstream Service Timeout"},
    }
)
async def create_calculation(
    admission_request: AdmissionRequest,
    service: CalculationService = Depends(get_calculation_service)
) -> AdmissionResponse:
    """
    Create and enrich an admission calculation.

    Args:
        admission_request: Hire date, gross salary and CEP
        service: Calculation service

    Returns:
        Persisted record with its address
    """
    logger.info(
        "calculation_requested",
        data_admissao=admission_request.hire_date.isoformat(),
        cep=admission_request.postal_code
    )
    return await service.create_and_enrich(admission_request)


# ============================================================================
# QUERIES
# ============================================================================


@router.get(
    "",
    response_model=Page[AdmissionRecord],
    summary="List Calculations",
)
async def list_calculations(
    page_request: PageRequest = Depends(newest_first_page),
    service: CalculationService = Depends(get_calculation_service)
) -> Page[AdmissionRecord]:
    """List stored calculations, newest first by default."""
    return await service.list_all(page_request)


@router.get(
    "/por-data",
    response_model=Page[AdmissionRecord],
    summary="Filter Calculations by Hire Date",
)
async def list_by_hire_date(
    inicio: date = Query(..., description="Start date, inclusive (yyyy-MM-dd)"),
    fim: date = Query(..., description="End date, inclusive (yyyy-MM-dd)"),
    page_request: PageRequest = Depends(newest_first_page),
    service: CalculationService = Depends(get_calculation_service)
) -> Page[AdmissionRecord]:
    """List calculations whose hire date falls within [inicio, fim]."""
    return await service.filter_by_date_range(inicio, fim, page_request)


@router.get(
    "/por-salario",
    response_model=Page[AdmissionRecord],
    summary="Filter Calculations by Minimum Salary",
)
async def list_by_salary_floor(
    minimum: Decimal = Query(
        ...,
        alias="min",
        max_digits=MAX_SALARY_DIGITS,
        description="Minimum gross salary, inclusive"
    ),
    page_request: PageRequest = Depends(highest_salary_first_page),
    service: CalculationService = Depends(get_calculation_service)
) -> Page[AdmissionRecord]:
    """List calculations whose gross salary is at least ``min``."""
    return await service.filter_by_salary_floor(minimum, page_request)


@router.get(
    "/{record_id}",
    response_model=AdmissionRecord,
    summary="Get Calculation",
    responses={
        404: {"model": ErrorResponse, "description": "Not Found"},
    }
)
async def get_calculation(
    record_id: str,
    service: CalculationService = Depends(get_calculation_service)
) -> AdmissionRecord:
    """Fetch one stored calculation by identifier."""
    return await service.get(record_id)
