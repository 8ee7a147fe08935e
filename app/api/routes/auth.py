from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging_config import get_logger
from app.core.rate_limit import limiter
from app.core.security import create_access_token, get_password_hash, validate_password_strength, verify_password
from app.core.utils import get_client_ip
from app.db.database import get_db
from app.models.user import User, UserPlan, UserRole
from app.schemas.user import Token, UserCreate, UserResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=UserResponse)
@limiter.limit(settings.register_rate_limit)
def register(user_data: UserCreate, request: Request, db: Session = Depends(get_db)):
    pw_error = validate_password_strength(user_data.password)
    if pw_error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=pw_error)

    email = user_data.email.lower()
    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    # Always self-registered as a free user; ADMIN_EMAILS elevation happens on first request
    user = User(
        email=email,
        hashed_password=get_password_hash(user_data.password),
        full_name=user_data.full_name,
        role=UserRole.USER,
        plan=UserPlan.FREE,
        monthly_limit=settings.default_monthly_limit,
        documents_used=0,
        storage_used=0,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered user {user.id} from {get_client_ip(request)}")
    return user


@router.post("/login", response_model=Token)
@limiter.limit(settings.login_rate_limit)
def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    ip = get_client_ip(request)
    user = db.query(User).filter(User.email == form_data.username.lower()).first()
    if not user or not verify_password(form_data.password, user.hashed_password):
        logger.warning(f"Failed login for {form_data.username} from {ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.info(f"User {user.id} logged in from {ip}")
    access_token = create_access_token(user.id)
    return Token(access_token=access_token)
