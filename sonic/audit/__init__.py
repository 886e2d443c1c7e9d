"""Audit trail for state-changing actions."""

from .recorder import AuditContext, AuditEntry, AuditRecorder

__all__ = ["AuditContext", "AuditEntry", "AuditRecorder"]
