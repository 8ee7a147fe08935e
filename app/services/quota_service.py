"""Monthly document quota and storage accounting.

Counters are only ever changed with single UPDATE statements whose arithmetic
runs in the database, so concurrent uploads and deletions by the same user
cannot lose updates or drive storage below zero.
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging_config import get_logger
from app.core.utils import as_utc
from app.models.document import Document
from app.models.user import User, UserPlan, UserRole

logger = get_logger(__name__)


def effective_limit(user: User) -> int:
    """Configured monthly limit, raised to the premium floor for premium plans and admins."""
    base_limit = user.monthly_limit if user.monthly_limit is not None else settings.default_monthly_limit
    floor = settings.premium_limit_floor if _has_premium_floor(user) else 0
    return max(base_limit, floor)


def remaining_documents(user: User) -> int:
    return max(effective_limit(user) - (user.documents_used or 0), 0)


def _has_premium_floor(user: User) -> bool:
    return user.plan == UserPlan.PREMIUM or user.role == UserRole.ADMIN


def quota_exceeded_details(user: User) -> str:
    limit = effective_limit(user)
    if _has_premium_floor(user):
        return f"You have used all {limit} uploads for this period. Contact support for a higher limit."
    return f"Free plan limit of {limit} uploads reached. Upgrade to premium for more."


def reset_monthly_usage_if_needed(db: Session, user: User, now: datetime | None = None) -> bool:
    """Lazily start a new quota period once quota_reset_days have passed.

    Must run before any quota evaluation. Returns True when a reset happened.
    """
    now = now or datetime.now(timezone.utc)
    last_reset = as_utc(user.last_reset)
    if last_reset is not None and now - last_reset < timedelta(days=settings.quota_reset_days):
        return False

    db.execute(
        update(User)
        .where(User.id == user.id)
        .values(documents_used=0, last_reset=now)
    )
    db.commit()
    db.refresh(user)
    logger.info(f"Monthly usage reset | user={user.id}")
    return True


def ensure_storage_initialized(db: Session, user: User) -> None:
    """Give rows created before storage tracking a zero counter."""
    if user.storage_used is not None:
        return
    db.execute(
        update(User)
        .where(User.id == user.id, User.storage_used.is_(None))
        .values(storage_used=0)
    )
    db.commit()
    db.refresh(user)
    logger.info(f"Initialized storage counter | user={user.id}")


def record_upload(db: Session, user_id: int, file_size: int) -> None:
    """Count one document and its bytes against the user. Caller commits."""
    db.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            documents_used=User.documents_used + 1,
            storage_used=func.coalesce(User.storage_used, 0) + file_size,
        )
    )


def release_storage(db: Session, user_id: int, file_size: int) -> None:
    """Return a deleted document's bytes, clamped at zero in the database. Caller commits."""
    current = func.coalesce(User.storage_used, 0)
    db.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            storage_used=case(
                (current > file_size, current - file_size),
                else_=0,
            )
        )
    )


def recompute_storage_usage(db: Session) -> int:
    """Overwrite every user's storage counter with the sum of their documents' sizes.

    Idempotent. Returns the number of user rows updated.
    """
    document_bytes = (
        select(func.coalesce(func.sum(Document.file_size), 0))
        .where(Document.user_id == User.id)
        .scalar_subquery()
    )
    result = db.execute(update(User).values(storage_used=document_bytes))
    db.commit()
    logger.info(f"Recomputed storage usage for {result.rowcount} users")
    return result.rowcount
