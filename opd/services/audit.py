"""
Audit trail for room and placement changes.
"""
from typing import Any, Dict, Optional

from opd.models import AuditEvent, User


def log_action(*, user: Optional[User], action: str, object_type: Optional[str] = None,
               object_id: Optional[int] = None, detail: Optional[Dict[str, Any]] = None) -> AuditEvent:
    """Record ``action`` against an object; anonymous or unsaved actors are stored as null."""
    actor = user if isinstance(user, User) and user.pk else None
    return AuditEvent.objects.create(
        user=actor,
        action=action,
        object_type=object_type,
        object_id=object_id,
        detail=detail or {},
    )
