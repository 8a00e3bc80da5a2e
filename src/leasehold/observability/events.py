"""Structured lease events.

Every notable claim transition is emitted as a log record carrying an
``event`` field plus a Prometheus counter increment, so the same stream
feeds log search and dashboards.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from leasehold.observability.metrics import get_metrics

logger = logging.getLogger("leasehold.events")


class LeaseEvent(str, Enum):
    """Lease event types."""

    RECORD_CREATED = "record_created"
    RECORD_EXISTS = "record_exists"
    CLAIM_ACQUIRED = "claim_acquired"
    CLAIM_RENEWED = "claim_renewed"
    CLAIM_LOST = "claim_lost"
    CONFLICT = "conflict"
    TRANSIENT_ERROR = "transient_error"


# Conflicts are ordinary contention, renewals are routine
_LEVELS = {
    LeaseEvent.RECORD_CREATED: logging.INFO,
    LeaseEvent.RECORD_EXISTS: logging.INFO,
    LeaseEvent.CLAIM_ACQUIRED: logging.INFO,
    LeaseEvent.CLAIM_RENEWED: logging.DEBUG,
    LeaseEvent.CLAIM_LOST: logging.WARNING,
    LeaseEvent.CONFLICT: logging.DEBUG,
    LeaseEvent.TRANSIENT_ERROR: logging.WARNING,
}


def emit_event(event: LeaseEvent, message: str, *, lease: str, **fields: Any) -> None:
    """Log ``event`` with structured fields and count it.

    Args:
        event: Event type
        message: Human-readable message
        lease: ``namespace/name`` of the lease
        **fields: Extra structured fields (claimant, retries, version, ...)
    """
    logger.log(
        _LEVELS[event],
        message,
        extra={"event": event.value, "lease_name": lease, **fields},
    )
    get_metrics().record_event(lease, event.value)
