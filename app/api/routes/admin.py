from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.api.deps import require_role
from app.core.config import settings
from app.core.logging_config import get_logger
from app.core.rate_limit import limiter
from app.core.security import UNUSABLE_PASSWORD_HASH, get_password_hash, validate_password_strength
from app.core.utils import escape_like, get_client_ip
from app.db.database import get_db
from app.models.audit_log import AuditAction
from app.models.document import Document
from app.models.progress import ExamAttempt, FlashcardProgress
from app.models.user import User, UserPlan, UserRole
from app.schemas.admin import (
    ActiveUsers,
    AdminUserCreate,
    AdminUserDetail,
    AdminUserItem,
    AdminUserList,
    AdminUserResult,
    AdminUserStats,
    AdminUserUpdate,
    AnalyticsResponse,
    AnalyticsTotals,
    StorageBreakdown,
    StorageItem,
    StorageRecomputeResponse,
    SuccessResponse,
    SuspendRequest,
    UserFileItem,
    UserFileList,
)
from app.schemas.audit import AuditLogList, AuditLogResponse
from app.schemas.user import UserResponse
from app.services.audit_service import log_action, query_audit_logs
from app.services.document_service import delete_document
from app.services.quota_service import recompute_storage_usage

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

require_admin = require_role(UserRole.ADMIN)


# ── Helpers ──────────────────────────────────────────────────


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _user_filters(
    search: str | None,
    role: UserRole | None,
    plan: UserPlan | None,
    status_filter: str | None,
) -> list:
    """Build the WHERE predicates for the admin user list."""
    predicates = []
    if search:
        term = f"%{escape_like(search.strip())}%"
        predicates.append(or_(
            User.full_name.ilike(term, escape="\\"),
            User.email.ilike(term, escape="\\"),
        ))
    if role:
        predicates.append(User.role == role)
    if plan:
        predicates.append(User.plan == plan)
    if status_filter == "banned":
        predicates.append(User.banned.is_(True))
    elif status_filter == "active":
        predicates.append(or_(User.banned.is_(False), User.banned.is_(None)))
    return predicates


def _document_counts(db: Session, user_ids: list[int]) -> dict[int, int]:
    if not user_ids:
        return {}
    rows = (
        db.query(Document.user_id, func.count(Document.id))
        .filter(Document.user_id.in_(user_ids))
        .group_by(Document.user_id)
        .all()
    )
    return {user_id: count for user_id, count in rows}


def _admin_user_item(user: User, document_count: int) -> AdminUserItem:
    data = UserResponse.model_validate(user).model_dump()
    return AdminUserItem(**data, document_count=document_count)


# ── Users ────────────────────────────────────────────────────


@router.get("/users", response_model=AdminUserList)
@limiter.limit(settings.admin_rate_limit)
def list_users(
    request: Request,
    search: str | None = None,
    role: UserRole | None = None,
    plan: UserPlan | None = None,
    status_filter: str | None = Query(None, alias="status", pattern="^(active|banned)$"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """List users with optional search, role, plan and status filters."""
    query = db.query(User).filter(*_user_filters(search, role, plan, status_filter))
    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit).all()
    counts = _document_counts(db, [u.id for u in users])

    log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.LIST_USERS,
        details={"search": search, "role": role, "plan": plan, "status": status_filter,
                 "limit": limit, "offset": offset},
        ip_address=get_client_ip(request),
    )
    db.commit()

    return AdminUserList(
        users=[_admin_user_item(u, counts.get(u.id, 0)) for u in users],
        total=total,
    )


@router.post("/users", response_model=AdminUserResult, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.admin_rate_limit)
def create_user(
    request: Request,
    data: AdminUserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Create an account. Without a password the account cannot log in with one."""
    email = data.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    if data.password:
        pw_error = validate_password_strength(data.password)
        if pw_error:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=pw_error)
        hashed_password = get_password_hash(data.password)
    else:
        hashed_password = UNUSABLE_PASSWORD_HASH

    user = User(
        email=email,
        hashed_password=hashed_password,
        full_name=data.full_name,
        role=data.role,
        plan=data.plan,
        monthly_limit=data.monthly_limit or settings.default_monthly_limit,
        documents_used=0,
        storage_used=0,
    )
    db.add(user)
    db.flush()

    log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.CREATE_USER,
        target_id=user.id,
        details={"email": email, "role": data.role, "plan": data.plan},
        ip_address=get_client_ip(request),
    )
    db.commit()
    db.refresh(user)
    logger.info(f"Admin {current_user.id} created user {user.id}")
    return AdminUserResult(user=user)


@router.get("/users/{user_id}", response_model=AdminUserDetail)
@limiter.limit(settings.admin_rate_limit)
def get_user(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    user = _get_user_or_404(db, user_id)
    stats = AdminUserStats(
        documents=db.query(Document).filter(Document.user_id == user.id).count(),
        exam_attempts=db.query(ExamAttempt).filter(ExamAttempt.user_id == user.id).count(),
        flashcard_progress=db.query(FlashcardProgress).filter(FlashcardProgress.user_id == user.id).count(),
    )

    log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.VIEW_USER,
        target_id=user.id,
        ip_address=get_client_ip(request),
    )
    db.commit()
    return AdminUserDetail(user=user, stats=stats)


@router.patch("/users/{user_id}", response_model=AdminUserResult)
@limiter.limit(settings.admin_rate_limit)
def update_user(
    user_id: int,
    request: Request,
    data: AdminUserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Update name, plan, monthly limit or role.

    A role change is audited as SET_ROLE, anything else as UPDATE_USER.
    """
    user = _get_user_or_404(db, user_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No changes provided")

    new_role = changes.get("role")
    role_changed = new_role is not None and new_role != user.role
    if role_changed and user.id == current_user.id and new_role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot remove your own admin role",
        )

    before = {field: getattr(user, field) for field in changes}
    for field, value in changes.items():
        setattr(user, field, value)

    log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.SET_ROLE if role_changed else AuditAction.UPDATE_USER,
        target_id=user.id,
        details={"before": before, "after": changes},
        ip_address=get_client_ip(request),
    )
    db.commit()
    db.refresh(user)
    logger.info(f"Admin {current_user.id} updated user {user.id}: {sorted(changes)}")
    return AdminUserResult(user=user)


@router.delete("/users/{user_id}", response_model=SuccessResponse)
@limiter.limit(settings.admin_rate_limit)
def delete_user(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Delete a user together with their documents and study progress."""
    user = _get_user_or_404(db, user_id)
    if user.id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete your own account")

    log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.DELETE_USER,
        target_id=user.id,
        details={"email": user.email},
        ip_address=get_client_ip(request),
    )
    db.delete(user)
    db.commit()
    logger.info(f"Admin {current_user.id} deleted user {user_id}")
    return SuccessResponse()


@router.post("/users/{user_id}/suspend", response_model=AdminUserResult)
@limiter.limit(settings.admin_rate_limit)
def suspend_user(
    user_id: int,
    request: Request,
    data: SuspendRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    user = _get_user_or_404(db, user_id)
    if user.id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot suspend your own account")
    if data.ban_expires is not None and data.ban_expires.tzinfo is None:
        data.ban_expires = data.ban_expires.replace(tzinfo=timezone.utc)

    user.banned = True
    user.ban_reason = data.reason
    user.ban_expires = data.ban_expires

    log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.BAN_USER,
        target_id=user.id,
        details={"reason": data.reason, "ban_expires": data.ban_expires},
        ip_address=get_client_ip(request),
    )
    db.commit()
    db.refresh(user)
    logger.info(f"Admin {current_user.id} suspended user {user.id}")
    return AdminUserResult(user=user)


@router.post("/users/{user_id}/unsuspend", response_model=AdminUserResult)
@limiter.limit(settings.admin_rate_limit)
def unsuspend_user(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    user = _get_user_or_404(db, user_id)
    user.banned = False
    user.ban_reason = None
    user.ban_expires = None

    log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.UNBAN_USER,
        target_id=user.id,
        ip_address=get_client_ip(request),
    )
    db.commit()
    db.refresh(user)
    return AdminUserResult(user=user)


# ── Files ────────────────────────────────────────────────────


@router.get("/users/{user_id}/files", response_model=UserFileList)
@limiter.limit(settings.admin_rate_limit)
def list_user_files(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    user = _get_user_or_404(db, user_id)
    documents = (
        db.query(Document)
        .filter(Document.user_id == user.id)
        .order_by(Document.upload_date.desc(), Document.id.desc())
        .all()
    )

    log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.VIEW_USER_FILES,
        target_id=user.id,
        ip_address=get_client_ip(request),
    )
    db.commit()
    return UserFileList(documents=[UserFileItem.model_validate(d) for d in documents])


@router.delete("/users/{user_id}/files/{document_id}", response_model=SuccessResponse)
@limiter.limit(settings.admin_rate_limit)
def delete_user_file(
    user_id: int,
    document_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Delete one of a user's documents and release its storage."""
    document = db.query(Document).filter(
        Document.id == document_id,
        Document.user_id == user_id,
    ).first()
    if not document:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")

    details = {"document_id": document.id, "original_name": document.original_name,
               "file_size": document.file_size}
    delete_document(db, document)

    log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.DELETE_USER_FILE,
        target_id=user_id,
        details=details,
        ip_address=get_client_ip(request),
    )
    db.commit()
    return SuccessResponse()


# ── Analytics & storage ──────────────────────────────────────


@router.get("/analytics", response_model=AnalyticsResponse)
@limiter.limit(settings.admin_rate_limit)
def get_analytics(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    now = datetime.now(timezone.utc)

    def active_since(delta: timedelta) -> int:
        return db.query(User).filter(User.last_active >= now - delta).count()

    totals = AnalyticsTotals(
        users=db.query(User).count(),
        documents=db.query(Document).count(),
        storage_bytes=db.query(func.coalesce(func.sum(User.storage_used), 0)).scalar() or 0,
    )
    active = ActiveUsers(
        last_24h=active_since(timedelta(hours=24)),
        last_7d=active_since(timedelta(days=7)),
        last_30d=active_since(timedelta(days=30)),
    )

    log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.VIEW_ANALYTICS,
        ip_address=get_client_ip(request),
    )
    db.commit()
    return AnalyticsResponse(totals=totals, active_users=active)


@router.get("/storage", response_model=StorageBreakdown)
@limiter.limit(settings.admin_rate_limit)
def get_storage_breakdown(
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Largest storage consumers first."""
    users = (
        db.query(User)
        .order_by(func.coalesce(User.storage_used, 0).desc(), User.id)
        .limit(limit)
        .all()
    )
    counts = _document_counts(db, [u.id for u in users])
    items = [
        StorageItem(
            id=u.id,
            full_name=u.full_name,
            email=u.email,
            storage_used=u.storage_used or 0,
            documents_used=u.documents_used or 0,
            document_count=counts.get(u.id, 0),
        )
        for u in users
    ]

    log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.VIEW_STORAGE,
        ip_address=get_client_ip(request),
    )
    db.commit()
    return StorageBreakdown(users=items)


@router.post("/storage/recompute", response_model=StorageRecomputeResponse)
@limiter.limit(settings.admin_rate_limit)
def recompute_storage(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Rebuild every storage counter from the documents table."""
    updated = recompute_storage_usage(db)

    log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.RECOMPUTE_STORAGE,
        details={"users_updated": updated},
        ip_address=get_client_ip(request),
    )
    db.commit()
    return StorageRecomputeResponse(users_updated=updated)


# ── Audit logs ───────────────────────────────────────────────


@router.get("/audit-logs", response_model=AuditLogList)
@limiter.limit(settings.admin_rate_limit)
def list_audit_logs(
    request: Request,
    action: str | None = None,
    user_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """List audit logs with filters. Admin only."""
    logs, total, user_map = query_audit_logs(
        db,
        action=action,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )

    items = [
        AuditLogResponse(
            id=log.id,
            user_id=log.user_id,
            user_name=user_map.get(log.user_id),
            action=log.action,
            target_id=log.target_id,
            details=log.details,
            ip_address=log.ip_address,
            created_at=log.created_at,
        )
        for log in logs
    ]

    # Written after the query so this view does not list itself
    log_action(
        db,
        user_id=current_user.id,
        action=AuditAction.VIEW_AUDIT_LOGS,
        details={"action": action, "user_id": user_id},
        ip_address=get_client_ip(request),
    )
    db.commit()
    return AuditLogList(logs=items, total=total)
