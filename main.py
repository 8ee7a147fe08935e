import time
import traceback
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import inspect as sa_inspect, text
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.exceptions import StudyAssistantError
from app.core.logging_config import setup_logging, get_logger, RequestLogger
from app.core.middleware import SecurityHeadersMiddleware
from app.core.rate_limit import limiter
from app.core.utils import get_client_ip
from app.db.database import Base, engine
from app.api.routes import admin, auth, documents, study, users

# Initialize logging first (auto-determines level based on environment)
setup_logging(
    app_name="study_assistant",
    log_level=settings.log_level,  # Empty = auto (DEBUG in dev, WARNING in prod)
    environment=settings.environment,
    enable_console=True,
    enable_file=settings.log_to_file,
    log_dir=settings.log_dir,
    max_bytes=settings.log_max_bytes,
    backup_count=settings.log_backup_count,
)

logger = get_logger(__name__)
request_logger = RequestLogger()

logger.info("Starting Study Assistant API...")

# Create database tables
from app.models import User, Document, ExamAttempt, FlashcardProgress, AuditLog  # noqa: F401
Base.metadata.create_all(bind=engine)
logger.info("Database tables created/verified")


# Lightweight schema migration: columns added to users after the first release.
# Existing rows get NULL/defaults; the quota service treats a NULL last_reset as
# due for reset and a NULL storage_used as zero until recomputed.
_USER_COLUMN_MIGRATIONS = [
    ("storage_used", "BIGINT DEFAULT 0"),
    ("last_reset", "TIMESTAMP"),
    ("last_active", "TIMESTAMP"),
    ("plan", "VARCHAR(7) NOT NULL DEFAULT 'FREE'"),
    ("banned", "BOOLEAN DEFAULT FALSE"),
]

with engine.connect() as conn:
    inspector = sa_inspect(engine)
    if "users" in inspector.get_table_names():
        existing_cols = {c["name"] for c in inspector.get_columns("users")}
        for column, ddl in _USER_COLUMN_MIGRATIONS:
            if column not in existing_cols:
                conn.execute(text(f"ALTER TABLE users ADD COLUMN {column} {ddl}"))
                logger.info(f"Added '{column}' column to users")
        conn.commit()


app = FastAPI(
    title=settings.app_name,
    description="Turns uploaded course documents into summaries, flashcards and exam questions",
    version="0.1.0",
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(StudyAssistantError)
async def study_assistant_error_handler(request: Request, exc: StudyAssistantError):
    """Domain errors carry their own status and client-safe message."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


# Global exception handler: logs full tracebacks for 500 errors
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions, log full traceback, return 500."""
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc}\n"
        f"{traceback.format_exc()}"
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests with timing."""
    start_time = time.time()
    client_ip = get_client_ip(request)

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    user_id = getattr(request.state, "user_id", None)
    upload_bytes = None
    if request.method == "POST" and request.url.path.endswith("/documents/upload"):
        upload_bytes = request.headers.get("content-length")

    request_logger.log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=duration_ms,
        client_ip=client_ip,
        user_id=user_id,
        upload_bytes=upload_bytes,
    )

    return response


# CORS middleware: explicit origins only, never a wildcard with credentials
if settings.allowed_origins:
    cors_origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
elif settings.environment == "production":
    cors_origins = [settings.frontend_url]
else:
    cors_origins = [
        "http://localhost:5173",
        "http://localhost:3000",
        settings.frontend_url,
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

# Security headers middleware
app.add_middleware(SecurityHeadersMiddleware)

app.include_router(auth.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(documents.router, prefix="/api")
app.include_router(study.router, prefix="/api")
app.include_router(admin.router, prefix="/api")

logger.info("API routes registered at /api")


@app.get("/health")
def health_check():
    logger.debug("Health check requested")
    return {"status": "healthy"}


@app.on_event("startup")
async def startup_event():
    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is not set; uploads will fail at the generation stage")
    logger.info(f"Study Assistant started | environment={settings.environment} | uploads={settings.upload_dir}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Study Assistant shutting down")
