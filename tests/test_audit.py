"""
Test suite for the hash-chained audit trail
"""

import pytest
from decimal import Decimal
from datetime import date

from peer_lending.audit import AuditTrail, AuditEventType


@pytest.fixture
def audit_trail(storage, clock):
    return AuditTrail(storage, clock=clock)


class TestAuditTrail:
    """Test event logging and chain verification"""

    def test_log_event(self, audit_trail):
        event = audit_trail.log_event(
            AuditEventType.LOAN_CREATED, "loan", "loan-1",
            metadata={"principal_amount": Decimal("100000"), "loan_start_date": date(2024, 1, 15)}
        )

        assert event.sequence == 1
        assert event.previous_hash == ""
        assert event.verify_hash()
        assert event.metadata == {"principal_amount": "100000", "loan_start_date": "2024-01-15"}

    def test_events_are_chained(self, audit_trail):
        first = audit_trail.log_event(AuditEventType.BORROWER_CREATED, "borrower", "b-1")
        second = audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "loan-1")

        assert second.sequence == 2
        assert second.previous_hash == first.current_hash
        assert audit_trail.verify_integrity() == {
            'valid': True,
            'total_events': 2,
            'hash_errors': [],
            'chain_breaks': []
        }

    def test_queries(self, audit_trail):
        audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "loan-1")
        audit_trail.log_event(AuditEventType.LOAN_UPDATED, "loan", "loan-1")
        audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "loan-2")

        events = audit_trail.get_events_for_entity("loan", "loan-1")
        assert [e.event_type for e in events] == [
            AuditEventType.LOAN_CREATED, AuditEventType.LOAN_UPDATED
        ]
        assert len(audit_trail.get_events_for_entity("loan", "loan-1", limit=1)) == 1
        assert len(audit_trail.get_events_by_type(AuditEventType.LOAN_CREATED)) == 2
        assert audit_trail.count_events() == 3

    def test_tampered_metadata_is_detected(self, audit_trail, storage):
        event = audit_trail.log_event(
            AuditEventType.INTEREST_COLLECTED, "interest_cycle", "c-1",
            metadata={"amount": "2000.00"}
        )
        audit_trail.log_event(AuditEventType.LOAN_UPDATED, "loan", "loan-1")

        data = storage.load(audit_trail.table_name, event.id)
        data["metadata"]["amount"] = "20.00"
        storage.save(audit_trail.table_name, event.id, data)

        result = audit_trail.verify_integrity()
        assert result["valid"] is False
        assert result["hash_errors"][0]["event_id"] == event.id

    def test_deleted_event_breaks_the_chain(self, audit_trail, storage):
        audit_trail.log_event(AuditEventType.BORROWER_CREATED, "borrower", "b-1")
        middle = audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "loan-1")
        audit_trail.log_event(AuditEventType.LOAN_UPDATED, "loan", "loan-1")

        storage.delete(audit_trail.table_name, middle.id)

        result = audit_trail.verify_integrity()
        assert result["valid"] is False
        assert len(result["chain_breaks"]) == 1

    def test_event_is_rolled_back_with_its_transaction(self, audit_trail, storage):
        with pytest.raises(RuntimeError):
            with storage.atomic():
                audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "loan-1")
                raise RuntimeError("boom")

        assert audit_trail.count_events() == 0
        assert audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "loan-1").sequence == 1
