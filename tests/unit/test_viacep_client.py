"""
Unit tests for the ViaCEP lookup client.

Runs the client against a local aiohttp server standing in for ViaCEP so
status handling, timeouts, retries and payload decoding go through the
real HTTP stack.
"""

import asyncio
from typing import Any, List, Tuple

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from prometheus_client import CollectorRegistry

from api.src.config import Settings
from api.src.errors import AddressLookupError, AddressLookupTimeoutError
from api.src.models.admission import AddressLookupResult
from api.src.services.viacep_client import ViaCepClient, normalize_cep
from shared.metrics import AdmissionMetrics

BELEM = {
    "cep": "66050-080",
    "logradouro": "Travessa Doutor Moraes",
    "complemento": "",
    "bairro": "Nazaré",
    "localidade": "Belém",
    "uf": "PA",
    "ibge": "1501402",
    "gia": "",
    "ddd": "91",
    "siafi": "0427",
}


class FakeViaCep:
    """Scripted ViaCEP stand-in; each request consumes the next response."""

    def __init__(self):
        self.calls: List[str] = []
        self.responses: List[Tuple[int, Any, float]] = []
        self.default: Tuple[int, Any, float] = (200, BELEM, 0)
        self.base_url = ""

    def respond(self, status: int, body: Any, delay: float = 0) -> None:
        self.responses.append((status, body, delay))

    async def handle(self, request: web.Request) -> web.Response:
        self.calls.append(request.match_info["cep"])
        status, body, delay = self.responses.pop(0) if self.responses else self.default

        if delay:
            await asyncio.sleep(delay)
        if isinstance(body, (dict, list)):
            return web.json_response(body, status=status)
        return web.Response(text=body, status=status, content_type="application/json")


@pytest_asyncio.fixture
async def fake_viacep():
    fake = FakeViaCep()
    app = web.Application()
    app.router.add_get("/ws/{cep}/json/", fake.handle)

    server = TestServer(app)
    await server.start_server()
    fake.base_url = str(server.make_url("/")).rstrip("/")
    try:
        yield fake
    finally:
        await server.close()


@pytest_asyncio.fixture
async def session():
    async with aiohttp.ClientSession() as client_session:
        yield client_session


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def make_client(fake_viacep, session, registry):
    def factory(**overrides) -> ViaCepClient:
        values = {
            "viacep_base_url": fake_viacep.base_url,
            "viacep_retry_initial_delay": 0,
            "viacep_retry_jitter": False,
        }
        values.update(overrides)
        return ViaCepClient(
            session,
            Settings(**values),
            metrics=AdmissionMetrics(registry=registry),
        )

    return factory


class TestNormalizeCep:
    """Test CEP normalization"""

    @pytest.mark.parametrize("cep,expected", [
        ("66050-080", "66050080"),
        ("66050080", "66050080"),
        (" 66.050-080 ", "66050080"),
    ])
    def test_strips_non_digits(self, cep, expected):
        assert normalize_cep(cep) == expected


class TestLookup:
    """Test strict lookup"""

    @pytest.mark.asyncio
    async def test_found(self, fake_viacep, make_client, registry):
        """Test a CEP with an address"""
        client = make_client()

        result = await client.lookup("66050-080")

        assert result.localidade == "Belém"
        assert result.uf == "PA"
        assert fake_viacep.calls == ["66050080"]
        assert registry.get_sample_value(
            "viacep_lookup_requests_total", {"outcome": "found"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_absent(self, fake_viacep, make_client, registry):
        """Test ViaCEP "erro" payload is an absent result, not an error"""
        fake_viacep.respond(200, {"erro": True})
        client = make_client()

        assert await client.lookup("00000000") is None
        assert fake_viacep.calls == ["00000000"]
        assert registry.get_sample_value(
            "viacep_lookup_requests_total", {"outcome": "absent"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_absent_with_string_flag(self, fake_viacep, make_client):
        """Test the string form of the erro flag"""
        fake_viacep.respond(200, {"erro": "true"})

        assert await make_client().lookup("00000000") is None

    @pytest.mark.asyncio
    async def test_client_error_status_not_retried(self, fake_viacep, make_client):
        """Test 4xx is an error, distinct from absent, and not retried"""
        fake_viacep.respond(400, "Bad Request")

        with pytest.raises(AddressLookupError) as exc_info:
            await make_client().lookup("66050080")

        assert exc_info.value.status == 400
        assert len(fake_viacep.calls) == 1

    @pytest.mark.asyncio
    async def test_server_error_retried_then_succeeds(self, fake_viacep, make_client):
        """Test a transient 503 is retried by the policy"""
        fake_viacep.respond(503, "Service Unavailable")

        result = await make_client().lookup("66050080")

        assert result.localidade == "Belém"
        assert len(fake_viacep.calls) == 2

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(self, fake_viacep, make_client, registry):
        """Test persistent 5xx fails after every attempt"""
        for _ in range(3):
            fake_viacep.respond(500, "Internal Server Error")

        with pytest.raises(AddressLookupError) as exc_info:
            await make_client(viacep_retry_max_attempts=3).lookup("66050080")

        assert exc_info.value.status == 500
        assert len(fake_viacep.calls) == 3
        assert registry.get_sample_value(
            "viacep_lookup_requests_total", {"outcome": "error"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_timeout(self, fake_viacep, make_client, registry):
        """Test each attempt is bounded by the configured timeout"""
        fake_viacep.default = (200, BELEM, 1.0)
        client = make_client(viacep_timeout_seconds=0.05, viacep_retry_max_attempts=2)

        with pytest.raises(AddressLookupTimeoutError):
            await client.lookup("66050080")

        assert len(fake_viacep.calls) == 2
        assert registry.get_sample_value(
            "viacep_lookup_requests_total", {"outcome": "timeout"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_invalid_json(self, fake_viacep, make_client):
        """Test an undecodable body is an error"""
        fake_viacep.respond(200, "<html>not json</html>")

        with pytest.raises(AddressLookupError):
            await make_client().lookup("66050080")

        assert len(fake_viacep.calls) == 1

    @pytest.mark.asyncio
    async def test_unexpected_payload_shape(self, fake_viacep, make_client):
        """Test a JSON array is an error"""
        fake_viacep.respond(200, [BELEM])

        with pytest.raises(AddressLookupError):
            await make_client().lookup("66050080")

    @pytest.mark.asyncio
    async def test_response_size_limit(self, fake_viacep, make_client):
        """Test bodies over the configured limit are rejected"""
        with pytest.raises(AddressLookupError):
            await make_client(viacep_max_response_bytes=16).lookup("66050080")

    @pytest.mark.asyncio
    async def test_connection_refused(self, session, registry):
        """Test transport failures become lookup errors"""
        client = ViaCepClient(
            session,
            Settings(
                viacep_base_url="http://127.0.0.1:9",
                viacep_retry_max_attempts=1,
            ),
            metrics=AdmissionMetrics(registry=registry),
        )

        with pytest.raises(AddressLookupError):
            await client.lookup("66050080")


class TestLookupWithFallback:
    """Test fallback lookup"""

    @pytest.fixture
    def fallback(self):
        return AddressLookupResult(cep="00000-000", localidade="Desconhecida")

    @pytest.mark.asyncio
    async def test_error_returns_fallback(self, fake_viacep, make_client, fallback):
        """Test lookup errors are replaced by the fallback"""
        fake_viacep.respond(404, "Not Found")

        assert await make_client().lookup_with_fallback("66050080", fallback) == fallback

    @pytest.mark.asyncio
    async def test_timeout_returns_fallback(self, fake_viacep, make_client, fallback):
        """Test timeouts are replaced by the fallback"""
        fake_viacep.default = (200, BELEM, 1.0)
        client = make_client(viacep_timeout_seconds=0.05, viacep_retry_max_attempts=1)

        assert await client.lookup_with_fallback("66050080", fallback) == fallback

    @pytest.mark.asyncio
    async def test_absent_is_not_replaced(self, fake_viacep, make_client, fallback):
        """Test an absent result stays absent"""
        fake_viacep.respond(200, {"erro": True})

        assert await make_client().lookup_with_fallback("00000000", fallback) is None

    @pytest.mark.asyncio
    async def test_success_ignores_fallback(self, fake_viacep, make_client, fallback):
        """Test a found address wins over the fallback"""
        result = await make_client().lookup_with_fallback("66050080", fallback)

        assert result.localidade == "Belém"
