"""Tests for the audit logger."""

from uuid import uuid4

from paid_ledger.audit import AuditLogger, create_correlation_id
from paid_ledger.models.audit import AuditEventBuilder, AuditEventType
from paid_ledger.services.storage import InMemoryAuditStorage


class BrokenAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise OSError("disk full")


class TestAuditLogger:
    """Tests for AuditLogger."""

    async def test_persists_event(self):
        """Test that events reach audit storage."""
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        correlation_id = create_correlation_id()
        event = AuditEventBuilder.template_cancelled(uuid4(), "owner-1", correlation_id=correlation_id)

        assert await logger.log(event) is True

        stored = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_id for e in stored] == [event.event_id]

    async def test_storage_failure_does_not_raise(self):
        """Test that a lost audit record is reported, not raised."""
        logger = AuditLogger(BrokenAuditStorage())
        event = AuditEventBuilder.template_cancelled(uuid4(), "owner-1")
        assert await logger.log(event) is False

    async def test_without_storage(self):
        """Test local-only logging."""
        assert await AuditLogger().log(AuditEventBuilder.template_cancelled(uuid4(), "owner-1")) is True

    async def test_log_error(self):
        """Test system error events."""
        storage = InMemoryAuditStorage()
        await AuditLogger(storage).log_error("RuntimeError", "boom", details={"component": "scheduler"})
        events = await storage.get_recent_events()
        assert events[0].event_type == AuditEventType.SYSTEM_ERROR
        assert events[0].details["component"] == "scheduler"
