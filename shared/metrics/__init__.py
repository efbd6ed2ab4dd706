"""Metrics module using Prometheus."""

from .prometheus_metrics import (
    AdmissionMetrics,
    setup_metrics,
    get_metrics_handler,
)

__all__ = [
    "AdmissionMetrics",
    "setup_metrics",
    "get_metrics_handler",
]
