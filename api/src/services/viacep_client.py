"""
ViaCEP postal-code lookup client.

Looks up a CEP with a single GET per attempt on a shared aiohttp session.
ViaCEP answers "no match" with a 200 whose body lacks both ``cep`` and
``localidade`` (``{"erro": true}``); that case is returned as None, while
error statuses, transport failures and timeouts raise AddressLookupError.

Each attempt is bounded by the configured timeout and the whole attempt
is wrapped by the "viacep" retry policy.
"""

import asyncio
import json
import re
import time
from typing import Optional

import aiohttp
import structlog

from api.src.config import Settings
from api.src.errors import AddressLookupError, AddressLookupTimeoutError
from api.src.models.admission import AddressLookupResult
from api.src.utils.retry import RetryConfig, RetryMetrics, retry_with_backoff
from shared.metrics import AdmissionMetrics

logger = structlog.get_logger(__name__)

RETRY_POLICY_NAME = "viacep"

_NON_DIGITS = re.compile(r"\D")


def normalize_cep(cep: str) -> str:
    """Strip every non-digit character ("66050-080" -> "66050080")."""
    return _NON_DIGITS.sub("", cep)


class ViaCepClient:
    """Client for the ViaCEP web service."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        settings: Settings,
        metrics: Optional[AdmissionMetrics] = None,
    ):
        """
        Initialize ViaCEP client.

        Args:
            session: Shared aiohttp session (owned by the caller)
            settings: Application settings (base URL, timeout, retry policy)
            metrics: Optional Prometheus metrics
        """
        self.session = session
        self.base_url = settings.viacep_base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=settings.viacep_timeout_seconds)
        self.max_response_bytes = settings.viacep_max_response_bytes
        self.metrics = metrics

        self.retry_config = RetryConfig(
            max_attempts=settings.viacep_retry_max_attempts,
            initial_delay=settings.viacep_retry_initial_delay,
            max_delay=settings.viacep_retry_max_delay,
            exponential_base=settings.viacep_retry_exponential_base,
            jitter=settings.viacep_retry_jitter,
        )
        self.retry_metrics = RetryMetrics()
        self._fetch_with_retry = retry_with_backoff(
            RETRY_POLICY_NAME,
            config=self.retry_config,
            metrics=self.retry_metrics,
        )(self._fetch)

    def url_for(self, normalized_cep: str) -> str:
        return f"{self.base_url}/ws/{normalized_cep}/json/"

    async def lookup(self, cep: str) -> Optional[AddressLookupResult]:
        """
        Look up the address of a CEP.

        Args:
            cep: CEP with or without separator

        Returns:
            Address, or None when ViaCEP reports no match

        Raises:
            AddressLookupTimeoutError: Deadline exceeded on the last attempt
            AddressLookupError: Error status, transport or decoding failure
        """
        normalized = normalize_cep(cep)
        start = time.perf_counter()
        outcome = "error"

        try:
            result = await self._fetch_with_retry(normalized)
            outcome = "found" if result is not None else "absent"
            return result

        except asyncio.TimeoutError as e:
            outcome = "timeout"
            logger.warning("viacep_lookup_timeout", cep=normalized)
            raise AddressLookupTimeoutError(
                f"Tempo esgotado ao consultar ViaCEP para o CEP: {normalized}"
            ) from e

        except aiohttp.ClientError as e:
            logger.warning("viacep_lookup_failed", cep=normalized, error=str(e))
            raise AddressLookupError(f"Erro ao consultar ViaCEP: {e}") from e

        finally:
            if self.metrics:
                self.metrics.lookup_requests.labels(outcome=outcome).inc()
                self.metrics.lookup_duration.observe(time.perf_counter() - start)

    async def lookup_with_fallback(
        self,
        cep: str,
        fallback: Optional[AddressLookupResult]
    ) -> Optional[AddressLookupResult]:
        """
        Look up a CEP, substituting ``fallback`` for any lookup error.

        A confirmed "no match" is not an error and still returns None.
        """
        try:
            return await self.lookup(cep)
        except AddressLookupError as e:
            logger.info(
                "viacep_lookup_fallback_used",
                cep=normalize_cep(cep),
                error_type=type(e).__name__
            )
            return fallback

    async def _fetch(self, normalized_cep: str) -> Optional[AddressLookupResult]:
        """Single lookup attempt."""
        url = self.url_for(normalized_cep)
        logger.debug("viacep_request", url=url)

        async with self.session.get(url, timeout=self.timeout) as response:
            if response.status >= 400:
                raise AddressLookupError(
                    f"Erro ao consultar ViaCEP: {response.status}",
                    status=response.status
                )

            if response.content_length is not None and response.content_length > self.max_response_bytes:
                raise AddressLookupError("Resposta do ViaCEP excede o tamanho máximo")
            raw = await response.read()
            if len(raw) > self.max_response_bytes:
                raise AddressLookupError("Resposta do ViaCEP excede o tamanho máximo")

        try:
            payload = json.loads(raw)
        except ValueError as e:
            raise AddressLookupError("Resposta do ViaCEP não é um JSON válido") from e

        if not isinstance(payload, dict):
            raise AddressLookupError("Resposta do ViaCEP em formato inesperado")

        # ViaCEP values are strings; flags such as "erro": true are dropped
        result = AddressLookupResult.model_validate(
            {k: v for k, v in payload.items() if isinstance(v, str)}
        )
        if result.is_empty():
            logger.info("viacep_cep_not_found", cep=normalized_cep)
            return None

        logger.debug("viacep_cep_found", cep=normalized_cep, localidade=result.localidade)
        return result
