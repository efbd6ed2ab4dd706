"""
Admission models.

Provides Pydantic schemas for:
- Admission calculation requests (validated at the API boundary)
- Persisted admission records
- ViaCEP address lookup results
- Calculation responses (record + address)

JSON field names follow the public wire contract (dataAdmissao, salarioBruto,
cep, ...); Python attributes are snake_case aliases of those names.
"""

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import BaseModel, Field, PlainSerializer, field_validator
from pydantic_core import PydanticCustomError

from api.src.utils.period import utc_today


PERCENTAGE_RATE = Decimal("0.35")

# Salary and its 35% must both fit the 34 significant digits of Decimal128
MAX_SALARY_DIGITS = 32

# Money values go out as JSON numbers
Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]

CEP_PATTERN = re.compile(r"\d{5}-?\d{3}")

# Fields a page of records may be sorted by (JSON names)
SORTABLE_FIELDS = (
    "id",
    "dataAdmissao",
    "salarioBruto",
    "anos",
    "meses",
    "dias",
    "porcentagem35",
    "criadoEm",
)


def digit_count(value: Decimal) -> int:
    """Digits needed to write ``value`` in plain fixed-point notation."""
    _, digits, exponent = value.as_tuple()
    if exponent >= 0:
        return len(digits) + exponent
    return max(len(digits), -exponent)


# ============================================================================
# Request
# ============================================================================


class AdmissionRequest(BaseModel):
    """Request to compute tenure and salary percentage."""
    hire_date: date = Field(
        ...,
        alias="dataAdmissao",
        description="Data de admissão (yyyy-MM-dd)"
    )
    gross_salary: Decimal = Field(
        ...,
        alias="salarioBruto",
        description="Salário bruto"
    )
    postal_code: str = Field(
        ...,
        alias="cep",
        description="CEP (12345-678 ou 12345678)"
    )

    @field_validator("hire_date")
    @classmethod
    def validate_hire_date(cls, v: date) -> date:
        """Reject hire dates in the future."""
        if v > utc_today():
            raise PydanticCustomError(
                "future_date", "dataAdmissao não pode ser no futuro"
            )
        return v

    @field_validator("gross_salary")
    @classmethod
    def validate_gross_salary(cls, v: Decimal) -> Decimal:
        """Salary must be strictly positive and at most MAX_SALARY_DIGITS digits."""
        if v <= 0:
            raise PydanticCustomError(
                "non_positive", "salarioBruto deve ser maior que zero"
            )
        if digit_count(v) > MAX_SALARY_DIGITS:
            raise PydanticCustomError(
                "too_many_digits",
                "salarioBruto deve ter no máximo {max_digits} dígitos",
                {"max_digits": MAX_SALARY_DIGITS},
            )
        return v

    @field_validator("postal_code")
    @classmethod
    def validate_postal_code(cls, v: str) -> str:
        """Accept 12345-678 or 12345678."""
        if not v.strip():
            raise PydanticCustomError("blank", "cep é obrigatório")
        if not CEP_PATTERN.fullmatch(v):
            raise PydanticCustomError(
                "invalid_cep",
                "CEP inválido. Formato esperado: 12345-678 ou 12345678"
            )
        return v

    model_config = {
        "populate_by_name": True,
        "frozen": True,
        "json_schema_extra": {
            "example": {
                "dataAdmissao": "2022-05-10",
                "salarioBruto": "3500.00",
                "cep": "66050080"
            }
        }
    }


# ============================================================================
# Persisted record
# ============================================================================


class AdmissionRecord(BaseModel):
    """
    Stored admission record.

    Derived fields are computed once at creation time; records are never
    updated afterwards. ``id`` is assigned by the store on insert.
    """
    id: Optional[str] = Field(
        None,
        description="Identifier assigned by the store"
    )
    hire_date: date = Field(..., alias="dataAdmissao")
    gross_salary: Money = Field(..., alias="salarioBruto")
    years: int = Field(..., ge=0, alias="anos")
    months: int = Field(..., ge=0, alias="meses")
    days: int = Field(..., ge=0, alias="dias")
    percentage: Money = Field(
        ...,
        alias="porcentagem35",
        description="35% of the gross salary"
    )
    created_at: datetime = Field(
        ...,
        alias="criadoEm",
        description="Server time at computation"
    )

    model_config = {
        "populate_by_name": True,
        "frozen": True,
    }


# ============================================================================
# ViaCEP
# ============================================================================


class AddressLookupResult(BaseModel):
    """Address as returned by ViaCEP. Unknown keys (e.g. ``erro``) are dropped."""
    cep: Optional[str] = None
    logradouro: Optional[str] = None
    complemento: Optional[str] = None
    unidade: Optional[str] = None
    bairro: Optional[str] = None
    localidade: Optional[str] = None
    uf: Optional[str] = None
    estado: Optional[str] = None
    regiao: Optional[str] = None
    ibge: Optional[str] = None
    gia: Optional[str] = None
    ddd: Optional[str] = None
    siafi: Optional[str] = None

    def is_empty(self) -> bool:
        """ViaCEP signals "no match" with a body lacking both cep and localidade."""
        return self.cep is None and self.localidade is None

    model_config = {
        "extra": "ignore",
        "frozen": True,
    }


# ============================================================================
# Response
# ============================================================================


class AdmissionResponse(AdmissionRecord):
    """Persisted record merged with its ViaCEP address."""
    address: AddressLookupResult = Field(..., alias="endereco")

    @classmethod
    def from_record(
        cls,
        record: AdmissionRecord,
        address: AddressLookupResult
    ) -> "AdmissionResponse":
        return cls(**record.model_dump(), address=address)
