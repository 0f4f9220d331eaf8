"""Audit sink for per-app events."""

from .audit_sink import AUDIT_LOGGER_NAME, AuditSink
from .models import AuditEvent

__all__ = ["AUDIT_LOGGER_NAME", "AuditEvent", "AuditSink"]
