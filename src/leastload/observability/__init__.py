"""Observability helpers for leastload."""

from leastload.observability.logs import configure_logging
from leastload.observability.metrics import MetricsRegistry

__all__ = ["MetricsRegistry", "configure_logging"]
