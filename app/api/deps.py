from datetime import datetime, timezone

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging_config import get_logger
from app.core.security import decode_access_token
from app.core.utils import as_utc
from app.db.database import get_db
from app.models.user import User, UserRole
from app.services.quota_service import reset_monthly_usage_if_needed

logger = get_logger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def is_suspended(user: User, now: datetime | None = None) -> bool:
    """A ban without an expiry is permanent; an expired ban no longer applies."""
    if not user.banned:
        return False
    expires = as_utc(user.ban_expires)
    return expires is None or expires > (now or datetime.now(timezone.utc))


def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    user_id = decode_access_token(token)
    if user_id is None:
        raise credentials_exception

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise credentials_exception

    if is_suspended(user):
        logger.warning(f"Suspended user {user.id} attempted access")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account suspended",
        )

    if user.role != UserRole.ADMIN and user.email.lower() in settings.get_admin_emails():
        user.role = UserRole.ADMIN
        logger.info(f"Elevated {user.email} to admin from ADMIN_EMAILS")
    user.last_active = datetime.now(timezone.utc)
    db.commit()
    db.refresh(user)

    reset_monthly_usage_if_needed(db, user)

    request.state.user_id = user.id
    return user


def require_role(*roles: UserRole):
    """Dependency factory that checks the current user has one of the required roles."""
    def checker(current_user: User = Depends(get_current_user)):
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user
    return checker
