"""Tests for audit logging and security events."""

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta

import pytest

from officemate.audit import AuditService, audited
from officemate.db.models import SecuritySeverity, utcnow
from officemate.errors import ValidationError


@dataclass
class Widget:
    id: uuid.UUID


class WidgetService:
    def __init__(self, session):
        self.session = session

    @audited("CREATE", "Widget")
    async def create(self, user_id: uuid.UUID, name: str) -> Widget:
        if not name:
            raise ValidationError("name required")
        return Widget(id=uuid.uuid4())


class UnauditableService:
    """Its audit rows violate NOT NULL on ``action``."""

    def __init__(self, session):
        self.session = session

    @audited(None, "Widget")
    async def create(self, user_id: uuid.UUID) -> Widget:
        AuditService(self.session).log_security_event("WIDGET_CREATED", user_id=user_id)
        return Widget(id=uuid.uuid4())


class TestAuditService:
    @pytest.mark.asyncio
    async def test_user_audit_trail(self, db_session):
        audit = AuditService(db_session)
        user_id = uuid.uuid4()
        audit.log_entity_creation("Wallet", uuid.uuid4(), user_id)
        audit.log_entity_update("Wallet", uuid.uuid4(), user_id, balance="10.00")
        audit.log_entity_deletion("Wallet", uuid.uuid4(), uuid.uuid4())
        await db_session.flush()

        trail = await audit.get_user_audit_trail(user_id)
        assert {entry.action for entry in trail} == {"CREATE", "UPDATE"}
        update = next(entry for entry in trail if entry.action == "UPDATE")
        assert update.details == {"balance": "10.00"}

    @pytest.mark.asyncio
    async def test_audit_line_logged(self, db_session, caplog):
        with caplog.at_level(logging.INFO, logger="officemate.audit"):
            AuditService(db_session).log_action("UPDATE", "RiderProfile", entity_id="abc")
        assert "action=UPDATE entity=RiderProfile entity_id=abc" in caplog.text

    @pytest.mark.asyncio
    async def test_security_event_filters(self, db_session):
        audit = AuditService(db_session)
        user_id = uuid.uuid4()
        audit.log_security_event("FAILED_OTP_VERIFICATION", SecuritySeverity.MEDIUM, user_id, "****3210")
        audit.log_security_event("ACCOUNT_LOCKED", SecuritySeverity.HIGH, user_id, "****3210")
        audit.log_security_event("ACCOUNT_LOCKED", SecuritySeverity.HIGH, uuid.uuid4(), "****0000")
        await db_session.flush()

        assert len(await audit.get_security_events()) == 3
        assert len(await audit.get_security_events(user_id=user_id)) == 2
        assert len(await audit.get_security_events(event_type="ACCOUNT_LOCKED")) == 2
        assert await audit.get_security_events(since=utcnow() + timedelta(minutes=1)) == []

    @pytest.mark.asyncio
    async def test_high_severity_logged_as_warning(self, db_session, caplog):
        with caplog.at_level(logging.INFO, logger="officemate.audit"):
            AuditService(db_session).log_security_event("SOS_TRIGGERED", SecuritySeverity.CRITICAL)
        assert caplog.records[-1].levelno == logging.WARNING


class TestAuditedDecorator:
    @pytest.mark.asyncio
    async def test_success_is_recorded(self, db_session):
        user_id = uuid.uuid4()
        widget = await WidgetService(db_session).create(user_id, "gear")
        await db_session.flush()

        trail = await AuditService(db_session).get_user_audit_trail(user_id)
        assert len(trail) == 1
        assert trail[0].entity_type == "Widget"
        assert trail[0].entity_id == str(widget.id)
        assert trail[0].details == {"method": "create"}

    @pytest.mark.asyncio
    async def test_failure_is_not_recorded(self, db_session):
        user_id = uuid.uuid4()
        with pytest.raises(ValidationError):
            await WidgetService(db_session).create(user_id, "")
        await db_session.flush()

        assert await AuditService(db_session).get_user_audit_trail(user_id) == []

    @pytest.mark.asyncio
    async def test_audit_write_failure_does_not_fail_call(self, db_session, caplog):
        user_id = uuid.uuid4()
        with caplog.at_level(logging.ERROR, logger="officemate.audit"):
            widget = await UnauditableService(db_session).create(user_id)
        await db_session.commit()

        assert isinstance(widget, Widget)
        assert "Audit logging failed for Widget.create" in caplog.text
        audit = AuditService(db_session)
        assert await audit.get_user_audit_trail(user_id) == []
        assert [e.event_type for e in await audit.get_security_events(user_id=user_id)] == ["WIDGET_CREATED"]
