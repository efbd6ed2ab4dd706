"""
Unit tests for the exception to error-envelope mapping.
"""

import pytest
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.src.errors import (
    AddressLookupError,
    AddressLookupTimeoutError,
    AddressNotFoundError,
    InvalidSortError,
    RecordNotFoundError,
    describe_validation_errors,
    to_error_response,
)


class TestDescribeValidationErrors:
    """Test label and message selection for validation errors"""

    def test_body_constraint_violation(self):
        """Test a value that decoded but broke a rule"""
        label, messages = describe_validation_errors([
            {"type": "non_positive", "loc": ("body", "salarioBruto"),
             "msg": "salarioBruto deve ser maior que zero"},
        ])

        assert label == "Validation Error"
        assert messages == ["salarioBruto: salarioBruto deve ser maior que zero"]

    def test_missing_body_field(self):
        """Test required field messages"""
        label, messages = describe_validation_errors([
            {"type": "missing", "loc": ("body", "dataAdmissao"), "msg": "Field required"},
            {"type": "missing", "loc": ("body", "cep"), "msg": "Field required"},
        ])

        assert label == "Validation Error"
        assert messages == [
            "dataAdmissao: dataAdmissao é obrigatória",
            "cep: cep é obrigatório",
        ]

    def test_invalid_date_format(self):
        """Test date hint names the field"""
        label, messages = describe_validation_errors([
            {"type": "date_from_datetime_parsing", "loc": ("body", "dataAdmissao"), "msg": "x"},
        ])

        assert label == "Malformed Request"
        assert messages == ["dataAdmissao: formato inválido. Use yyyy-MM-dd"]

    def test_wrong_type(self):
        """Test type hint names the field"""
        label, messages = describe_validation_errors([
            {"type": "decimal_parsing", "loc": ("body", "salarioBruto"), "msg": "x"},
        ])

        assert label == "Malformed Request"
        assert messages == ["Tipo de dado inválido para o campo salarioBruto. Verifique o JSON."]

    def test_malformed_json(self):
        """Test unparseable body"""
        label, messages = describe_validation_errors([
            {"type": "json_invalid", "loc": ("body", 12), "msg": "JSON decode error"},
        ])

        assert label == "Malformed Request"
        assert messages == ["Corpo da requisição inválido (JSON malformado)."]

    def test_absent_body(self):
        """Test request without a body"""
        label, messages = describe_validation_errors([
            {"type": "missing", "loc": ("body",), "msg": "Field required"},
        ])

        assert label == "Malformed Request"
        assert messages == ["Corpo da requisição ausente."]

    def test_decode_error_wins_over_constraint(self):
        """Test mixed errors report the decoding failure"""
        label, messages = describe_validation_errors([
            {"type": "invalid_cep", "loc": ("body", "cep"), "msg": "CEP inválido"},
            {"type": "date_from_datetime_parsing", "loc": ("body", "dataAdmissao"), "msg": "x"},
        ])

        assert label == "Malformed Request"
        assert messages == ["dataAdmissao: formato inválido. Use yyyy-MM-dd"]

    def test_query_constraint(self):
        """Test query parameter bounds"""
        label, messages = describe_validation_errors([
            {"type": "greater_than_equal", "loc": ("query", "page"), "msg": "x", "ctx": {"ge": 0}},
        ])

        assert label == "Constraint Violation"
        assert messages == ["page: deve ser maior ou igual a 0"]

    def test_query_decimal_digits(self):
        """Test decimal parameters longer than allowed"""
        label, messages = describe_validation_errors([
            {"type": "decimal_max_digits", "loc": ("query", "min"), "msg": "x", "ctx": {"max_digits": 32}},
        ])

        assert label == "Constraint Violation"
        assert messages == ["min: deve ter no máximo 32 dígitos"]

    def test_missing_query_parameter(self):
        """Test absent required parameters"""
        label, messages = describe_validation_errors([
            {"type": "missing", "loc": ("query", "fim"), "msg": "Field required"},
        ])

        assert label == "Malformed Request"
        assert messages == ["Parâmetro obrigatório ausente: fim"]


class TestToErrorResponse:
    """Test the total exception mapping"""

    @pytest.mark.parametrize("exc,status,label", [
        (AddressNotFoundError("66050080"), 422, "API Error"),
        (RecordNotFoundError("abc"), 404, "Not Found"),
        (AddressLookupError("boom", status=500), 502, "Upstream Service Error"),
        (AddressLookupTimeoutError("slow"), 504, "Upstream Service Timeout"),
        (InvalidSortError("nome", ["id"]), 400, "Constraint Violation"),
        (StarletteHTTPException(status_code=405), 405, "Method Not Allowed"),
        (RuntimeError("boom"), 500, "Internal Server Error"),
    ])
    def test_mapping(self, exc, status, label):
        """Test status and label per error kind"""
        error = to_error_response(exc, "/api/calculos")

        assert error.status == status
        assert error.error == label
        assert error.path == "/api/calculos"
        assert error.messages

    def test_domain_error_message(self):
        """Test the not-found address message"""
        error = to_error_response(AddressNotFoundError("66050080"))

        assert error.messages == ["ViaCEP não retornou dados para o CEP: 66050080"]

    def test_unclassified_message(self):
        """Test internal errors carry the exception message"""
        assert to_error_response(RuntimeError("boom")).messages == ["Erro interno: boom"]

    def test_unclassified_without_message_uses_type_name(self):
        """Test internal errors without message"""
        assert to_error_response(KeyError()).messages == ["Erro interno: KeyError"]

    def test_request_validation_error(self):
        """Test validation errors map to 400"""
        exc = RequestValidationError([
            {"type": "missing", "loc": ("body", "cep"), "msg": "Field required"},
        ])

        error = to_error_response(exc, "/api/calculos")

        assert error.status == 400
        assert error.error == "Validation Error"
        assert error.messages == ["cep: cep é obrigatório"]
