"""Tests for lease events and metrics."""

import logging

from prometheus_client import REGISTRY

from leasehold.observability.events import LeaseEvent, emit_event
from leasehold.observability.metrics import get_metrics


def event_count(lease: str, event: LeaseEvent) -> float:
    value = REGISTRY.get_sample_value(
        "leasehold_lease_events_total", {"lease": lease, "event": event.value}
    )
    return value or 0.0


class TestEmitEvent:
    """Tests for emit_event."""

    def test_logs_structured_fields(self, caplog) -> None:
        """Events carry their type, lease and extra fields."""
        with caplog.at_level(logging.DEBUG, logger="leasehold.events"):
            emit_event(
                LeaseEvent.CLAIM_ACQUIRED,
                "Acquired lease default/events-a",
                lease="default/events-a",
                claimant="pod-a",
            )

        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.event == "claim_acquired"
        assert record.lease_name == "default/events-a"
        assert record.claimant == "pod-a"

    def test_levels_by_severity(self, caplog) -> None:
        """Routine events log at DEBUG, losses at WARNING."""
        with caplog.at_level(logging.DEBUG, logger="leasehold.events"):
            emit_event(LeaseEvent.CLAIM_RENEWED, "renewed", lease="default/events-b")
            emit_event(LeaseEvent.CONFLICT, "conflict", lease="default/events-b")
            emit_event(LeaseEvent.CLAIM_LOST, "lost", lease="default/events-b")

        assert [r.levelno for r in caplog.records[-3:]] == [
            logging.DEBUG,
            logging.DEBUG,
            logging.WARNING,
        ]

    def test_counts_events(self) -> None:
        """Each event increments the Prometheus counter."""
        before = event_count("default/events-c", LeaseEvent.CONFLICT)

        emit_event(LeaseEvent.CONFLICT, "conflict", lease="default/events-c")
        emit_event(LeaseEvent.CONFLICT, "conflict", lease="default/events-c")

        assert event_count("default/events-c", LeaseEvent.CONFLICT) == before + 2


class TestLeaderGauge:
    """Tests for the leadership gauge."""

    def test_set_leader(self) -> None:
        metrics = get_metrics()
        labels = {"lease": "default/gauge", "claimant": "pod-a"}

        metrics.set_leader("default/gauge", "pod-a", True)
        assert REGISTRY.get_sample_value("leasehold_is_leader", labels) == 1.0

        metrics.set_leader("default/gauge", "pod-a", False)
        assert REGISTRY.get_sample_value("leasehold_is_leader", labels) == 0.0
