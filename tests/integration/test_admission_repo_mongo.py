"""
Integration tests for the admission repository against a real MongoDB.

Tests cover:
- Insert assigns an ObjectId and round-trips every field
- Inclusive hire-date range queries
- Inclusive salary floor queries on Decimal128 values
- Sorting and paging across pages
- Index creation

These tests use testcontainers to spin up a MongoDB instance and are
skipped when Docker is not available.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Generator

import pytest
from pymongo import MongoClient
from testcontainers.mongodb import MongoDbContainer

from api.src.models.admission import AdmissionRecord
from api.src.models.pagination import PageRequest, Sort, SortDirection
from api.src.repositories.admission_repo import AdmissionRepository
from api.src.services.calculation_service import percentage_of
from api.src.utils.period import calculate_period

TODAY = date(2025, 7, 5)
NOW = datetime(2025, 7, 5, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="module")
def mongodb_container() -> Generator[MongoDbContainer, None, None]:
    """Start MongoDB container for tests."""
    container = MongoDbContainer("mongo:7.0")
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Docker not available: {e}")

    yield container
    container.stop()


@pytest.fixture(scope="module")
def mongo_client(mongodb_container) -> Generator[MongoClient, None, None]:
    client = MongoClient(mongodb_container.get_connection_url(), tz_aware=True)
    yield client
    client.close()


@pytest.fixture
def repository(mongo_client) -> Generator[AdmissionRepository, None, None]:
    collection = mongo_client["admissao_test"]["admissoes"]
    collection.delete_many({})
    repo = AdmissionRepository(collection)
    repo.ensure_indexes()
    yield repo
    collection.delete_many({})


def make_record(hire_date: date, salary: str) -> AdmissionRecord:
    gross_salary = Decimal(salary)
    period = calculate_period(hire_date, today=TODAY)
    return AdmissionRecord(
        hire_date=hire_date,
        gross_salary=gross_salary,
        years=period.years,
        months=period.months,
        days=period.days,
        percentage=percentage_of(gross_salary),
        created_at=NOW,
    )


def page(page: int = 0, size: int = 20, field: str = "dataAdmissao",
         direction: SortDirection = SortDirection.ASC) -> PageRequest:
    return PageRequest(page=page, size=size, sort=Sort(field=field, direction=direction))


class TestAdmissionRepositoryMongo:
    """Repository behaviour on a live MongoDB."""

    def test_insert_and_find_by_id(self, repository):
        """Test insert assigns an id and every field round-trips"""
        record = make_record(date(2022, 5, 10), "3500.00")

        saved = repository.insert(record)
        loaded = repository.find_by_id(saved.id)

        assert saved.id is not None
        assert loaded == saved
        assert loaded.percentage == Decimal("1225.0000")
        assert loaded.created_at == NOW

    def test_find_by_unknown_id(self, repository):
        assert repository.find_by_id("64b7f0c2e1d3a4b5c6d7e8f9") is None

    def test_hire_date_range_inclusive(self, repository):
        """Test records on both range boundaries are returned"""
        for hire_date in (date(2021, 12, 31), date(2022, 1, 1), date(2023, 6, 15),
                          date(2024, 1, 1), date(2024, 1, 2)):
            repository.insert(make_record(hire_date, "2000.00"))

        result = repository.find_by_hire_date_between(date(2022, 1, 1), date(2024, 1, 1), page())

        assert [r.hire_date for r in result.content] == [
            date(2022, 1, 1), date(2023, 6, 15), date(2024, 1, 1)
        ]
        assert result.total_elements == 3

    def test_salary_floor_inclusive(self, repository):
        """Test Decimal128 comparison includes the floor"""
        for salary in ("2999.99", "3000.00", "10000.00"):
            repository.insert(make_record(date(2022, 5, 10), salary))

        result = repository.find_by_salary_at_least(
            Decimal("3000"), page(field="salarioBruto", direction=SortDirection.DESC)
        )

        assert [r.gross_salary for r in result.content] == [Decimal("10000.00"), Decimal("3000.00")]

    def test_paging(self, repository):
        """Test second page of five from twelve records"""
        for day in range(1, 13):
            repository.insert(make_record(date(2023, 1, day), "1500.00"))

        result = repository.find_all(page(page=1, size=5))

        assert result.total_elements == 12
        assert result.total_pages == 3
        assert result.number_of_elements == 5
        assert [r.hire_date.day for r in result.content] == [6, 7, 8, 9, 10]
        assert not result.first
        assert not result.last

    def test_indexes_created(self, repository):
        index_keys = [list(index["key"].keys()) for index in repository.collection.list_indexes()]

        assert ["dataAdmissao"] in index_keys
        assert ["salarioBruto"] in index_keys
        assert ["criadoEm"] in index_keys

    def test_ping(self, repository):
        assert repository.ping() is True
