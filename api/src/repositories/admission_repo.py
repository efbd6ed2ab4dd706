"""
Admission repository for MongoDB operations.

Provides blocking insert and paged query operations over the ``admissoes``
collection using pymongo. Callers running on the event loop must dispatch
these methods to a worker thread.

Document layout:
    _id            ObjectId (assigned on insert)
    dataAdmissao   datetime, midnight UTC (BSON has no date type)
    salarioBruto   Decimal128
    anos/meses/dias int
    porcentagem35  Decimal128
    criadoEm       datetime, UTC
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

import pymongo
import structlog
from bson import ObjectId
from bson.decimal128 import Decimal128
from bson.errors import InvalidId
from pymongo.collection import Collection

from api.src.models.admission import AdmissionRecord
from api.src.models.pagination import Page, PageRequest, SortDirection

logger = structlog.get_logger(__name__)

# JSON sort field -> document field
_SORT_FIELD_MAP = {"id": "_id"}


def _date_to_bson(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _decimal_from_bson(value: Any) -> Decimal:
    if isinstance(value, Decimal128):
        return value.to_decimal()
    return Decimal(str(value))


class AdmissionRepository:
    """Repository for admission record storage."""

    def __init__(self, collection: Collection):
        """
        Initialize admission repository.

        Args:
            collection: pymongo collection holding admission documents
        """
        self.collection = collection

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    @staticmethod
    def to_document(record: AdmissionRecord) -> Dict[str, Any]:
        """Convert a record to its MongoDB document (without _id)."""
        return {
            "dataAdmissao": _date_to_bson(record.hire_date),
            "salarioBruto": Decimal128(record.gross_salary),
            "anos": record.years,
            "meses": record.months,
            "dias": record.days,
            "porcentagem35": Decimal128(record.percentage),
            "criadoEm": record.created_at,
        }

    @staticmethod
    def from_document(document: Dict[str, Any]) -> AdmissionRecord:
        """Convert a MongoDB document to a record."""
        hire_date = document["dataAdmissao"]
        if isinstance(hire_date, datetime):
            hire_date = hire_date.date()

        return AdmissionRecord(
            id=str(document["_id"]),
            hire_date=hire_date,
            gross_salary=_decimal_from_bson(document["salarioBruto"]),
            years=document["anos"],
            months=document["meses"],
            days=document["dias"],
            percentage=_decimal_from_bson(document["porcentagem35"]),
            created_at=document["criadoEm"],
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def ensure_indexes(self) -> None:
        """Create the indexes used by the range and sort queries."""
        self.collection.create_index([("dataAdmissao", pymongo.ASCENDING)])
        self.collection.create_index([("salarioBruto", pymongo.ASCENDING)])
        self.collection.create_index([("criadoEm", pymongo.DESCENDING)])
        logger.info("admission_indexes_ensured", collection=self.collection.name)

    def insert(self, record: AdmissionRecord) -> AdmissionRecord:
        """
        Insert a new record.

        Args:
            record: Record without identifier

        Returns:
            The same record carrying the identifier assigned by MongoDB
        """
        try:
            result = self.collection.insert_one(self.to_document(record))
        except Exception as e:
            logger.error("admission_insert_failed", error=str(e))
            raise

        logger.info("admission_inserted", admission_id=str(result.inserted_id))
        return record.model_copy(update={"id": str(result.inserted_id)})

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_id(self, record_id: str) -> Optional[AdmissionRecord]:
        """
        Get record by identifier.

        Args:
            record_id: Hex ObjectId

        Returns:
            Record if found (malformed identifiers match nothing)
        """
        try:
            object_id = ObjectId(record_id)
        except (InvalidId, TypeError):
            return None

        document = self.collection.find_one({"_id": object_id})
        return self.from_document(document) if document else None

    def find_all(self, page_request: PageRequest) -> Page[AdmissionRecord]:
        """List every record, paged."""
        return self._find_page({}, page_request)

    def find_by_hire_date_between(
        self,
        start: date,
        end: date,
        page_request: PageRequest
    ) -> Page[AdmissionRecord]:
        """List records hired within [start, end], both ends inclusive."""
        query = {
            "dataAdmissao": {
                "$gte": _date_to_bson(start),
                "$lte": _date_to_bson(end),
            }
        }
        return self._find_page(query, page_request)

    def find_by_salary_at_least(
        self,
        minimum: Decimal,
        page_request: PageRequest
    ) -> Page[AdmissionRecord]:
        """List records whose gross salary is >= minimum."""
        query = {"salarioBruto": {"$gte": Decimal128(minimum)}}
        return self._find_page(query, page_request)

    def ping(self) -> bool:
        """Check that the server answers."""
        self.collection.database.client.admin.command("ping")
        return True

    def _find_page(self, query: Dict[str, Any], page_request: PageRequest) -> Page[AdmissionRecord]:
        sort = page_request.sort
        sort_field = _SORT_FIELD_MAP.get(sort.field, sort.field)
        sort_order = pymongo.ASCENDING if sort.direction == SortDirection.ASC else pymongo.DESCENDING
        sort_spec = [(sort_field, sort_order)]
        if sort_field != "_id":
            # stable order across pages for equal keys
            sort_spec.append(("_id", sort_order))

        try:
            total = self.collection.count_documents(query)
            cursor = (
                self.collection.find(query)
                .sort(sort_spec)
                .skip(page_request.offset)
                .limit(page_request.size)
            )
            content = [self.from_document(doc) for doc in cursor]
        except Exception as e:
            logger.error(
                "admission_query_failed",
                error=str(e),
                query=str(query),
                page=page_request.page,
                size=page_request.size
            )
            raise

        return Page[AdmissionRecord].of(content, page_request, total)
