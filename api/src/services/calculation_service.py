"""
Admission calculation service.

Orchestrates the create-and-enrich flow:
1. Compute the tenure period and the 35% salary figure
2. Persist the record (blocking store call on a worker thread)
3. Look up the address of the CEP on ViaCEP
4. Merge the persisted record with the address

Stages run strictly in that order and each runs exactly once per request.
A failed or empty lookup does not roll back the persisted record.
"""

import asyncio
import time
from concurrent.futures import Executor
from datetime import date, datetime, timezone
from decimal import Decimal, localcontext
from functools import partial
from typing import Callable, Optional

import structlog

from api.src.errors import AddressNotFoundError, RecordNotFoundError
from api.src.models.admission import (
    PERCENTAGE_RATE, AdmissionRecord, AdmissionRequest, AdmissionResponse
)
from api.src.models.pagination import Page, PageRequest
from api.src.repositories.admission_repo import AdmissionRepository
from api.src.services.viacep_client import ViaCepClient
from api.src.utils.period import calculate_period
from shared.metrics import AdmissionMetrics

logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def percentage_of(gross_salary: Decimal) -> Decimal:
    """35% of the gross salary, exact (never rounded by the decimal context)."""
    with localcontext() as ctx:
        ctx.prec = len(gross_salary.as_tuple().digits) + len(PERCENTAGE_RATE.as_tuple().digits)
        return gross_salary * PERCENTAGE_RATE


class CalculationService:
    """Service for admission calculations and record queries."""

    def __init__(
        self,
        repository: AdmissionRepository,
        lookup_client: ViaCepClient,
        executor: Executor,
        metrics: Optional[AdmissionMetrics] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize calculation service.

        Args:
            repository: Admission repository (blocking)
            lookup_client: ViaCEP client
            executor: Bounded worker pool for repository calls
            metrics: Optional Prometheus metrics
            clock: Source of the creation timestamp (UTC)
        """
        self.repository = repository
        self.lookup_client = lookup_client
        self.executor = executor
        self.metrics = metrics
        self.clock = clock

    async def _run_blocking(self, operation: str, func: Callable, *args):
        """Run a repository call on the worker pool."""
        loop = asyncio.get_running_loop()
        start = time.perf_counter()
        try:
            return await loop.run_in_executor(self.executor, partial(func, *args))
        finally:
            if self.metrics:
                self.metrics.persistence_duration.labels(operation=operation).observe(
                    time.perf_counter() - start
                )

    def build_record(self, request: AdmissionRequest) -> AdmissionRecord:
        """
        Compute the derived fields of a new record.

        Args:
            request: Validated admission request

        Returns:
            Record without identifier
        """
        now = self.clock()
        period = calculate_period(request.hire_date, today=now.date())

        return AdmissionRecord(
            hire_date=request.hire_date,
            gross_salary=request.gross_salary,
            years=period.years,
            months=period.months,
            days=period.days,
            percentage=percentage_of(request.gross_salary),
            created_at=now,
        )

    async def create_and_enrich(self, request: AdmissionRequest) -> AdmissionResponse:
        """
        Compute, persist and enrich an admission.

        Args:
            request: Validated admission request

        Returns:
            Persisted record merged with its address

        Raises:
            AddressNotFoundError: ViaCEP has no address for the CEP
            AddressLookupError: ViaCEP call failed after retries
        """
        outcome = "failed"
        try:
            record = self.build_record(request)
            saved = await self._run_blocking("insert", self.repository.insert, record)

            logger.info(
                "admission_calculated",
                admission_id=saved.id,
                anos=saved.years,
                meses=saved.months,
                dias=saved.days
            )

            address = await self.lookup_client.lookup(request.postal_code)
            if address is None:
                outcome = "address_not_found"
                logger.warning(
                    "admission_address_not_found",
                    admission_id=saved.id,
                    cep=request.postal_code
                )
                raise AddressNotFoundError(request.postal_code)

            outcome = "created"
            return AdmissionResponse.from_record(saved, address)

        finally:
            if self.metrics:
                self.metrics.calculations.labels(outcome=outcome).inc()

    async def get(self, record_id: str) -> AdmissionRecord:
        """
        Get a stored record.

        Raises:
            RecordNotFoundError: No record with that identifier
        """
        record = await self._run_blocking("find_by_id", self.repository.find_by_id, record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    async def list_all(self, page_request: PageRequest) -> Page[AdmissionRecord]:
        return await self._run_blocking("find_all", self.repository.find_all, page_request)

    async def filter_by_date_range(
        self,
        start: date,
        end: date,
        page_request: PageRequest
    ) -> Page[AdmissionRecord]:
        """Records hired between start and end, inclusive."""
        return await self._run_blocking(
            "find_by_hire_date_between",
            self.repository.find_by_hire_date_between,
            start,
            end,
            page_request
        )

    async def filter_by_salary_floor(
        self,
        minimum: Decimal,
        page_request: PageRequest
    ) -> Page[AdmissionRecord]:
        """Records whose gross salary is at least ``minimum``."""
        return await self._run_blocking(
            "find_by_salary_at_least",
            self.repository.find_by_salary_at_least,
            minimum,
            page_request
        )

    async def ping(self) -> bool:
        return await self._run_blocking("ping", self.repository.ping)
