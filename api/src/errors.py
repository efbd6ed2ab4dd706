"""
Error taxonomy and HTTP error mapping.

Every exception reaching the API boundary is converted by
to_error_response() into an ErrorResponse envelope. The mapping is a total
function: known kinds get their own status and label, anything else is an
internal error.

Request decoding failures are described from the location and type that
pydantic reports for each failing field, so the hint names the offending
field without inspecting exception chains.
"""

from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fastapi import status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.src.models.errors import ErrorResponse


# ============================================================================
# Exceptions
# ============================================================================


class AdmissaoError(Exception):
    """Base exception for all service errors."""


class DomainError(AdmissaoError):
    """A recognized business-rule failure."""


class AddressNotFoundError(DomainError):
    """ViaCEP answered successfully but has no address for the CEP."""

    def __init__(self, cep: str) -> None:
        self.cep = cep
        super().__init__(f"ViaCEP não retornou dados para o CEP: {cep}")


class RecordNotFoundError(AdmissaoError):
    """No stored admission record with the given identifier."""

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"Registro não encontrado: {record_id}")


class AddressLookupError(AdmissaoError):
    """ViaCEP call failed (error status, transport failure, undecodable body)."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        self.status = status
        super().__init__(message)


class AddressLookupTimeoutError(AddressLookupError):
    """ViaCEP did not answer within the configured deadline."""


class InvalidSortError(AdmissaoError):
    """Sort parameter names a field that cannot be sorted on."""

    def __init__(self, field: str, allowed: Sequence[str]) -> None:
        self.field = field
        self.allowed = tuple(allowed)
        super().__init__(
            f"sort: campo '{field}' inválido. Valores aceitos: {', '.join(allowed)}"
        )


# ============================================================================
# Labels
# ============================================================================

VALIDATION_ERROR = "Validation Error"
CONSTRAINT_VIOLATION = "Constraint Violation"
MALFORMED_REQUEST = "Malformed Request"
API_ERROR = "API Error"
NOT_FOUND = "Not Found"
UPSTREAM_ERROR = "Upstream Service Error"
UPSTREAM_TIMEOUT = "Upstream Service Timeout"
INTERNAL_ERROR = "Internal Server Error"

# Messages for missing body fields
REQUIRED_MESSAGES = {
    "dataAdmissao": "dataAdmissao é obrigatória",
    "salarioBruto": "salarioBruto é obrigatório",
    "cep": "cep é obrigatório",
}

DATE_ERROR_TYPES = {
    "date_type",
    "date_parsing",
    "date_from_datetime_parsing",
    "date_from_datetime_inexact",
}

# pydantic error types produced while decoding a value, as opposed to
# constraint violations on a value that decoded fine
DECODE_ERROR_TYPES = DATE_ERROR_TYPES | {
    "json_invalid",
    "json_type",
    "model_type",
    "model_attributes_type",
    "dict_type",
    "string_type",
    "decimal_type",
    "decimal_parsing",
    "int_type",
    "int_parsing",
    "int_from_float",
    "float_type",
    "float_parsing",
    "bool_type",
    "bool_parsing",
    "finite_number",
}


# ============================================================================
# Validation error description
# ============================================================================


def _field_name(loc: Sequence[Any]) -> Optional[str]:
    """Drop the 'body'/'query' prefix and join the remaining path."""
    parts = [str(p) for p in loc[1:]]
    return ".".join(parts) if parts else None


def _is_decode_error(error: Dict[str, Any]) -> bool:
    if error.get("type") in DECODE_ERROR_TYPES:
        return True
    # whole body absent
    return error.get("type") == "missing" and tuple(error.get("loc", ())) == ("body",)


def _decode_message(error: Dict[str, Any]) -> str:
    field = _field_name(error.get("loc", ()))
    error_type = error.get("type")

    if error_type == "missing":
        return "Corpo da requisição ausente."

    if error_type == "json_invalid" or (field is None and error_type in DECODE_ERROR_TYPES):
        return "Corpo da requisição inválido (JSON malformado)."
    if error_type in DATE_ERROR_TYPES:
        return f"{field}: formato inválido. Use yyyy-MM-dd"
    return f"Tipo de dado inválido para o campo {field}. Verifique o JSON."


def _constraint_message(error: Dict[str, Any]) -> str:
    loc = error.get("loc", ())
    field = _field_name(loc) or "param"
    error_type = error.get("type")
    ctx = error.get("ctx") or {}

    if error_type == "missing":
        if loc and loc[0] == "body":
            return f"{field}: {REQUIRED_MESSAGES.get(field, f'{field} é obrigatório')}"
        return f"Parâmetro obrigatório ausente: {field}"
    if error_type == "greater_than_equal":
        return f"{field}: deve ser maior ou igual a {ctx.get('ge')}"
    if error_type == "greater_than":
        return f"{field}: deve ser maior que {ctx.get('gt')}"
    if error_type == "decimal_max_digits":
        return f"{field}: deve ter no máximo {ctx.get('max_digits')} dígitos"
    return f"{field}: {error.get('msg')}"


def describe_validation_errors(errors: Sequence[Dict[str, Any]]) -> Tuple[str, List[str]]:
    """
    Turn pydantic/FastAPI validation errors into (label, messages).

    Decoding failures win over constraint failures since a value that
    cannot be decoded was never checked against its constraints.

    Args:
        errors: RequestValidationError.errors()

    Returns:
        Error category label and one message per offending field
    """
    decode_errors = [e for e in errors if _is_decode_error(e)]
    if decode_errors:
        messages: List[str] = []
        for error in decode_errors:
            message = _decode_message(error)
            if message not in messages:
                messages.append(message)
        return MALFORMED_REQUEST, messages

    messages = [_constraint_message(e) for e in errors]
    in_body = any(e.get("loc", ("",))[0] == "body" for e in errors)
    only_missing_params = all(e.get("type") == "missing" for e in errors)

    if in_body:
        return VALIDATION_ERROR, messages
    if only_missing_params:
        return MALFORMED_REQUEST, messages
    return CONSTRAINT_VIOLATION, messages


# ============================================================================
# Mapping
# ============================================================================


def _envelope(status_code: int, label: str, messages: List[str], path: Optional[str]) -> ErrorResponse:
    return ErrorResponse(
        timestamp=datetime.now(timezone.utc),
        status=status_code,
        error=label,
        messages=messages,
        path=path,
    )


def to_error_response(exc: BaseException, path: Optional[str] = None) -> ErrorResponse:
    """
    Map any exception to the uniform error envelope.

    Args:
        exc: Exception raised while handling the request
        path: Request path

    Returns:
        ErrorResponse with status, label and messages
    """
    if isinstance(exc, RequestValidationError):
        label, messages = describe_validation_errors(exc.errors())
        return _envelope(status.HTTP_400_BAD_REQUEST, label, messages, path)

    if isinstance(exc, InvalidSortError):
        return _envelope(status.HTTP_400_BAD_REQUEST, CONSTRAINT_VIOLATION, [str(exc)], path)

    if isinstance(exc, DomainError):
        return _envelope(status.HTTP_422_UNPROCESSABLE_ENTITY, API_ERROR, [str(exc)], path)

    if isinstance(exc, RecordNotFoundError):
        return _envelope(status.HTTP_404_NOT_FOUND, NOT_FOUND, [str(exc)], path)

    if isinstance(exc, AddressLookupTimeoutError):
        return _envelope(status.HTTP_504_GATEWAY_TIMEOUT, UPSTREAM_TIMEOUT, [str(exc)], path)

    if isinstance(exc, AddressLookupError):
        return _envelope(status.HTTP_502_BAD_GATEWAY, UPSTREAM_ERROR, [str(exc)], path)

    if isinstance(exc, StarletteHTTPException):
        try:
            label = HTTPStatus(exc.status_code).phrase
        except ValueError:
            label = "HTTP Error"
        return _envelope(exc.status_code, label, [str(exc.detail)], path)

    message = str(exc) or type(exc).__name__
    return _envelope(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        INTERNAL_ERROR,
        [f"Erro interno: {message}"],
        path,
    )
