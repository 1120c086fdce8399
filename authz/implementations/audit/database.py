"""Audit sink persisting events to authorization_audit_logs."""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authz.core.interfaces.audit import AuditEvent
from authz.models.audit_log import AuthorizationAuditLog
from authz.utils.context import get_request_id

logger = structlog.get_logger(__name__)


class DatabaseAuditSink:
    """
    Stores every audit event as an immutable row.

    Errors propagate; the engine logs them without changing the verdict.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def emit(self, event: AuditEvent) -> None:
        entry = AuthorizationAuditLog(
            event_type=event.event_type.value,
            user_id=event.user_id,
            actor_ip=event.actor_ip,
            resource=event.resource,
            resource_id=event.resource_id,
            action=event.action,
            verdict=event.verdict,
            reason=event.reason,
            policy_id=event.policy_id,
            detail=event.detail,
            extra_data=event.extra or None,
            request_id=get_request_id(),
            created_at=event.timestamp,
        )

        async with self.session_factory() as session:
            session.add(entry)
            await session.commit()

        logger.debug(
            "Audit log created",
            event_type=event.event_type.value,
            user_id=event.user_id,
            verdict=event.verdict,
        )
