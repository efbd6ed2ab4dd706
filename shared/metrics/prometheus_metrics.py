"""Prometheus metrics definitions and helpers.

Provides metric definitions for the admission calculation service.
"""

from typing import Callable, Optional

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    REGISTRY,
    CollectorRegistry,
)


class AdmissionMetrics:
    """Admission calculation metrics."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        """Initialize admission metrics.

        Args:
            registry: Prometheus registry to use
        """
        # Calculations by outcome (created, address_not_found, failed)
        self.calculations = Counter(
            "admissao_calculations_total",
            "Total number of admission calculations",
            ["outcome"],
            registry=registry,
        )

        # Blocking store calls
        self.persistence_duration = Histogram(
            "admissao_persistence_duration_seconds",
            "Time spent in MongoDB calls on the worker pool",
            ["operation"],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
            registry=registry,
        )

        # ViaCEP lookups by outcome (found, absent, timeout, error)
        self.lookup_requests = Counter(
            "viacep_lookup_requests_total",
            "Total number of ViaCEP lookups",
            ["outcome"],
            registry=registry,
        )

        # ViaCEP lookup latency, retries included
        self.lookup_duration = Histogram(
            "viacep_lookup_duration_seconds",
            "Time spent looking up a CEP",
            buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
            registry=registry,
        )


_metrics: Optional[AdmissionMetrics] = None


def setup_metrics() -> AdmissionMetrics:
    """Create the process-wide metrics on the default registry once.

    Returns:
        AdmissionMetrics instance
    """
    global _metrics
    if _metrics is None:
        _metrics = AdmissionMetrics()
    return _metrics


def get_metrics_handler(registry: CollectorRegistry = REGISTRY) -> Callable[[], bytes]:
    """Get metrics handler for HTTP endpoint.

    Returns:
        Function that generates Prometheus metrics output
    """

    def metrics_handler() -> bytes:
        return generate_latest(registry)

    return metrics_handler
