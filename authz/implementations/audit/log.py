"""Structured-log audit sink."""

import structlog

from authz.core.interfaces.audit import AuditEvent

logger = structlog.get_logger("authz.audit")


class LogAuditSink:
    """
    Writes audit events as structured log lines.

    DENY events log at WARNING, everything else at INFO.
    """

    async def emit(self, event: AuditEvent) -> None:
        data = event.to_dict()
        message = data.pop("event_type")
        if event.verdict == "DENY":
            logger.warning(message, **data)
        else:
            logger.info(message, **data)
