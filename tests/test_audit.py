"""
Test suite for audit module

Tests hash-chained audit trail, tamper detection and integrity verification.
"""

import pytest
from datetime import datetime, timezone, date
from decimal import Decimal

from bank_ledger.storage import InMemoryStorage
from bank_ledger.audit import AuditTrail, AuditEvent, AuditEventType


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def test_metadata_serialization(self):
        """Metadata values are converted to JSON-friendly types"""
        now = datetime.now(timezone.utc)

        event = AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.STANDING_ORDER_EXECUTED,
            entity_type="standing_order",
            entity_id="SO001",
            previous_hash="",
            current_hash="",
            metadata={
                "amount": Decimal("50.00"),
                "as_of": date(2024, 1, 15),
                "event": AuditEventType.INTEREST_RUN,
                "nested": {"values": [Decimal("1.1"), Decimal("2.2")]}
            }
        )

        assert event.metadata["amount"] == "50.00"
        assert event.metadata["as_of"] == "2024-01-15"
        assert event.metadata["event"] == "interest_run"
        assert event.metadata["nested"]["values"] == ["1.1", "2.2"]

    def test_hash_covers_metadata(self):
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT002",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.ACCOUNT_OPENED,
            entity_type="account",
            entity_id="SAV001",
            previous_hash="",
            current_hash="",
            metadata={"holder_name": "Alice"}
        )
        event.current_hash = event.calculate_hash()
        assert event.verify_hash()

        event.metadata["holder_name"] = "Mallory"
        assert not event.verify_hash()


class TestAuditTrail:
    """Test hash chaining and integrity checks"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def test_events_are_chained(self):
        first = self.audit_trail.log_event(AuditEventType.ACCOUNT_OPENED, "account", "SAV001", {})
        second = self.audit_trail.log_event(AuditEventType.ACCOUNT_CLOSED, "account", "SAV001", {})

        assert first.previous_hash == ""
        assert second.previous_hash == first.current_hash
        assert self.audit_trail.count_events() == 2

        result = self.audit_trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 2

    def test_queries(self):
        self.audit_trail.log_event(AuditEventType.ACCOUNT_OPENED, "account", "SAV001", {})
        self.audit_trail.log_event(AuditEventType.ACCOUNT_OPENED, "account", "CHK001", {})
        self.audit_trail.log_event(AuditEventType.ACCOUNT_CLOSED, "account", "SAV001", {})

        events = self.audit_trail.get_events_for_entity("account", "SAV001")
        assert [e.event_type for e in events] == [
            AuditEventType.ACCOUNT_OPENED, AuditEventType.ACCOUNT_CLOSED
        ]
        assert len(self.audit_trail.get_events_by_type(AuditEventType.ACCOUNT_OPENED)) == 2
        assert len(self.audit_trail.get_events_for_entity("account", "SAV001", limit=1)) == 1

    def test_tampering_is_detected(self):
        event = self.audit_trail.log_event(
            AuditEventType.ACCOUNT_OPENED, "account", "SAV001", {"initial_deposit": "100.00"}
        )
        self.audit_trail.log_event(AuditEventType.ACCOUNT_CLOSED, "account", "SAV001", {})

        stored = self.storage.load("audit_events", event.id)
        stored["metadata"]["initial_deposit"] = "1000000.00"
        self.storage.save("audit_events", event.id, stored)

        result = self.audit_trail.verify_integrity()
        assert not result["valid"]
        assert [e["event_id"] for e in result["hash_errors"]] == [event.id]

    def test_chain_continues_after_reload(self):
        self.audit_trail.log_event(AuditEventType.ACCOUNT_OPENED, "account", "SAV001", {})

        reloaded = AuditTrail(self.storage)
        reloaded.log_event(AuditEventType.ACCOUNT_CLOSED, "account", "SAV001", {})

        assert reloaded.verify_integrity()["valid"]
        assert reloaded.count_events() == 2

    def test_disabled_trail_records_nothing(self):
        trail = AuditTrail(self.storage, enabled=False)

        assert trail.log_event(AuditEventType.ACCOUNT_OPENED, "account", "SAV001", {}) is None
        assert trail.count_events() == 0
