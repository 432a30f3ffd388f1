"""Audit trail for state-changing operations and security events.

Service methods opt in with the ``audited`` decorator. Each successful call
writes an ``AuditLog`` row inside a savepoint of the caller's unit of work
and one ``key=value`` line to the ``officemate.audit`` logger. A failed audit
write is logged and never fails the audited call.
"""

import functools
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from officemate.db.models import AuditLog, SecurityEvent, SecuritySeverity, enum_value

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("officemate.audit")


class AuditService:
    """Writes and queries audit and security records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def log_action(
        self,
        action: str,
        entity_type: str,
        user_id: Optional[uuid.UUID] = None,
        entity_id: Optional[Any] = None,
        details: Optional[dict] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            details=details,
        )
        self.session.add(entry)
        audit_logger.info(
            f"action={action} entity={entity_type} entity_id={entry.entity_id} user={user_id}"
        )
        return entry

    def log_entity_creation(
        self, entity_type: str, entity_id: Any, user_id: Optional[uuid.UUID] = None, **details
    ) -> AuditLog:
        return self.log_action("CREATE", entity_type, user_id, entity_id, details or None)

    def log_entity_update(
        self, entity_type: str, entity_id: Any, user_id: Optional[uuid.UUID] = None, **details
    ) -> AuditLog:
        return self.log_action("UPDATE", entity_type, user_id, entity_id, details or None)

    def log_entity_deletion(
        self, entity_type: str, entity_id: Any, user_id: Optional[uuid.UUID] = None, **details
    ) -> AuditLog:
        return self.log_action("DELETE", entity_type, user_id, entity_id, details or None)

    def log_security_event(
        self,
        event_type: str,
        severity: SecuritySeverity = SecuritySeverity.LOW,
        user_id: Optional[uuid.UUID] = None,
        identifier: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> SecurityEvent:
        """Record a security event. ``identifier`` must already be masked."""
        event = SecurityEvent(
            event_type=event_type,
            severity=severity,
            user_id=user_id,
            identifier=identifier,
            details=details,
        )
        self.session.add(event)
        level = logging.WARNING if severity in (SecuritySeverity.HIGH, SecuritySeverity.CRITICAL) else logging.INFO
        audit_logger.log(
            level,
            f"security_event={event_type} severity={enum_value(severity)} "
            f"user={user_id} identifier={identifier}",
        )
        return event

    async def get_user_audit_trail(self, user_id: uuid.UUID, limit: int = 50) -> list[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.user_id == user_id)
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_security_events(
        self,
        user_id: Optional[uuid.UUID] = None,
        event_type: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> list[SecurityEvent]:
        stmt = select(SecurityEvent)
        if user_id is not None:
            stmt = stmt.where(SecurityEvent.user_id == user_id)
        if event_type:
            stmt = stmt.where(SecurityEvent.event_type == event_type)
        if since is not None:
            stmt = stmt.where(SecurityEvent.created_at >= since)
        stmt = stmt.order_by(SecurityEvent.created_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


def _first_uuid(args: tuple, kwargs: dict) -> Optional[uuid.UUID]:
    for value in list(args) + list(kwargs.values()):
        if isinstance(value, uuid.UUID):
            return value
    return None


def audited(action: str, entity_type: str) -> Callable:
    """Audit a successful call of an async service method.

    The decorated method's instance must expose ``session``. The user id is
    the first ``uuid.UUID`` argument and the entity id is taken from the
    result's ``id`` when it has one.

    Example:
        @audited("CREATE", "DriverProfile")
        async def create_driver_profile(self, user_id, request): ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            result = await func(self, *args, **kwargs)
            user_id = _first_uuid(args, kwargs)
            entity_id = getattr(result, "id", None)
            # Flush the caller's writes outside the savepoint
            await self.session.flush()
            try:
                async with self.session.begin_nested():
                    AuditService(self.session).log_action(
                        action,
                        entity_type,
                        user_id=user_id,
                        entity_id=entity_id,
                        details={"method": func.__name__},
                    )
            except SQLAlchemyError as e:
                logger.error(f"Audit logging failed for {entity_type}.{func.__name__}: {e}")
            return result

        return wrapper

    return decorator
