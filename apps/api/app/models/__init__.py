from app.models.audit_log import AuditLog
from app.models.stack import Service, Stack

__all__ = ["Stack", "Service", "AuditLog"]
