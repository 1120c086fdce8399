"""Audit sink implementations."""

from authz.implementations.audit.database import DatabaseAuditSink
from authz.implementations.audit.log import LogAuditSink

__all__ = ["DatabaseAuditSink", "LogAuditSink"]
