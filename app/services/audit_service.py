"""Audit trail for administrative actions."""

import json
import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.audit_log import AuditAction, AuditLog
from app.models.user import User

logger = logging.getLogger(__name__)


def log_action(
    db: Session,
    *,
    user_id: int | None,
    action: AuditAction | str,
    target_id: int | None = None,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> None:
    """Record an administrative action in the caller's transaction.

    The insert runs inside a SAVEPOINT: if it fails only the savepoint is
    rolled back, a warning is logged and the caller's work still commits.
    """
    if not settings.audit_log_enabled:
        return
    action_name = action.value if isinstance(action, AuditAction) else str(action).upper()
    payload = json.dumps(details, default=str) if details else None
    try:
        with db.begin_nested():
            db.add(AuditLog(
                user_id=user_id,
                action=action_name,
                target_id=target_id,
                details=payload,
                ip_address=ip_address,
            ))
            db.flush()
    except Exception:
        logger.warning("Failed to write audit log for %s", action_name, exc_info=True)


def query_audit_logs(
    db: Session,
    *,
    action: str | None = None,
    user_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[AuditLog], int, dict[int, str]]:
    """Newest-first page of audit entries, the total match count, and actor names by id."""
    query = db.query(AuditLog)
    if action:
        query = query.filter(AuditLog.action == action.upper())
    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)
    if date_from:
        query = query.filter(AuditLog.created_at >= date_from)
    if date_to:
        query = query.filter(AuditLog.created_at <= date_to)

    total = query.count()
    logs = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(offset).limit(limit).all()

    actor_ids = {log.user_id for log in logs if log.user_id}
    names = {}
    if actor_ids:
        names = dict(db.query(User.id, User.full_name).filter(User.id.in_(actor_ids)).all())
    return logs, total, names
