from app.models.audit_event import AuditEvent
from app.models.base import Base
from app.models.dashboard import Dashboard
from app.models.policy import Policy
from app.models.user import User

__all__ = [
    "Base",
    "User",
    "Dashboard",
    "Policy",
    "AuditEvent",
]
