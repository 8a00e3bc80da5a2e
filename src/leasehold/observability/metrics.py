"""Prometheus metrics for leasehold.

Provides:
- Lease event counters (acquired, renewed, lost, conflicts, errors)
- Leadership gauge per lease and claimant

Usage:
    from leasehold.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.lease_events_total.labels(lease="default/scheduler", event="claim_acquired").inc()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from leasehold.config import settings

logger = logging.getLogger(__name__)


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    lease_events_total: Any = None
    is_leader: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    @property
    def enabled(self) -> bool:
        return self.lease_events_total is not None

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        from prometheus_client import REGISTRY, Counter, Gauge

        self._registry = REGISTRY

        self.lease_events_total = Counter(
            "leasehold_lease_events_total",
            "Lease state machine events",
            ["lease", "event"],
        )

        self.is_leader = Gauge(
            "leasehold_is_leader",
            "1 while this process holds the lease",
            ["lease", "claimant"],
        )

        self._initialized = True
        logger.debug("Prometheus metrics initialized")

    def record_event(self, lease: str, event: str) -> None:
        if self.enabled:
            self.lease_events_total.labels(lease=lease, event=event).inc()

    def set_leader(self, lease: str, claimant: str, leader: bool) -> None:
        if self.enabled:
            self.is_leader.labels(lease=lease, claimant=claimant).set(1 if leader else 0)


metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the initialized metrics registry."""
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


def start_metrics_server(port: int) -> None:
    """Expose metrics over HTTP on ``port``."""
    from prometheus_client import start_http_server

    get_metrics()
    start_http_server(port)
    logger.info(f"Serving metrics on :{port}/metrics")
