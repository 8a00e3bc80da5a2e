"""Observability module for leasehold.

Provides structured logging, lease events and metrics:
- JSON structured logging with claimant/lease context
- Lease lifecycle events
- Prometheus metrics
"""

from leasehold.observability.events import LeaseEvent, emit_event
from leasehold.observability.logging import (
    LogContext,
    claimant_var,
    configure_logging,
    lease_var,
)
from leasehold.observability.metrics import (
    get_metrics,
    metrics_registry,
    start_metrics_server,
)

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "claimant_var",
    "lease_var",
    # Events
    "LeaseEvent",
    "emit_event",
    # Metrics
    "metrics_registry",
    "get_metrics",
    "start_metrics_server",
]
