"""
Document ingestion pipeline.

One upload runs Received -> Validated -> Extracted -> Generated -> Persisted
-> Accounted -> CleanedUp. Client errors end the run as "rejected", server
errors as "failed". The temporary file is removed on every exit path, and
the usage counters are touched only in the same transaction that creates
the Document row.
"""

import enum
import re
import secrets
import time
from pathlib import Path

from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.exceptions import (
    FileTooLargeError,
    InsufficientContentError,
    NotFoundError,
    PersistenceError,
    QuotaExceededError,
    StudyAssistantError,
    ValidationError,
)
from app.core.logging_config import StageLogger, get_logger
from app.models.document import Document
from app.models.user import User
from app.services.ai_service import SUPPORTED_LANGUAGES, generate_study_materials
from app.services.file_processor import extract_text, is_supported_media_type
from app.services.quota_service import (
    effective_limit,
    ensure_storage_initialized,
    quota_exceeded_details,
    record_upload,
    reset_monthly_usage_if_needed,
)

logger = get_logger(__name__)

CHUNK_SIZE = 1024 * 1024
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class IngestionStage(str, enum.Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    EXTRACTED = "extracted"
    GENERATED = "generated"
    PERSISTED = "persisted"
    ACCOUNTED = "accounted"
    CLEANED_UP = "cleaned_up"
    REJECTED = "rejected"
    FAILED = "failed"


stage_logger = StageLogger()


def _log_stage(stage: IngestionStage, user_id: int, exc_info: bool = False, **fields) -> None:
    stage_logger.log_stage(stage.value, user_id, exc_info=exc_info, **fields)


def normalize_language(language: str | None) -> str:
    """Case-insensitive match on a supported language; anything else falls back to English."""
    value = (language or "english").strip().lower()
    if value not in SUPPORTED_LANGUAGES:
        logger.info(f"Unsupported language '{language}', generating in english")
        return "english"
    return value


def build_temp_filename(original_name: str | None) -> str:
    """Collision-resistant storage name: <ms timestamp>-<random>-<sanitized original name>."""
    base = Path(original_name or "upload").name
    safe = _UNSAFE_FILENAME_CHARS.sub("_", base).strip("._") or "upload"
    return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}-{safe[-100:]}"


def remove_temp_file(path: Path) -> None:
    """Best-effort delete; failures are logged, never raised."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to remove temporary upload {path}: {e}")


async def save_upload(upload: UploadFile, upload_dir: Path, max_bytes: int) -> tuple[Path, int]:
    """Stream an upload to temporary storage, enforcing the size limit as it goes."""
    if upload.size is not None and upload.size > max_bytes:
        raise FileTooLargeError(f"Maximum upload size is {max_bytes // (1024 * 1024)} MB")

    upload_dir.mkdir(parents=True, exist_ok=True)
    path = upload_dir / build_temp_filename(upload.filename)
    size = 0
    try:
        with open(path, "wb") as out:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > max_bytes:
                    raise FileTooLargeError(f"Maximum upload size is {max_bytes // (1024 * 1024)} MB")
                out.write(chunk)
    except Exception:
        remove_temp_file(path)
        raise
    return path, size


async def ingest_document(
    db: Session,
    *,
    user_id: int,
    upload: UploadFile,
    language: str | None = "english",
) -> Document:
    """
    Run one upload through the pipeline and return the persisted Document.

    Raises:
        ValidationError: Bad media type or size (nothing stored)
        NotFoundError: The requesting user no longer exists
        QuotaExceededError: Monthly limit reached
        ExtractionError: Decoder failure, or too little text (InsufficientContentError)
        GenerationError: AI call failed or returned malformed output
        PersistenceError: The document or counters could not be written
    """
    language = normalize_language(language)
    media_type = (upload.content_type or "").split(";")[0].strip().lower()
    if not is_supported_media_type(media_type):
        raise ValidationError(
            "Invalid file type. Only PDF, DOCX, and PPTX files are allowed.",
            error="Invalid file type",
        )
    original_name = upload.filename or "upload"

    temp_path: Path | None = None
    try:
        temp_path, file_size = await save_upload(
            upload, Path(settings.upload_dir), settings.max_upload_size_bytes
        )
        _log_stage(IngestionStage.RECEIVED, user_id, file=original_name, type=media_type, size=file_size)

        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError(error="User not found")
        reset_monthly_usage_if_needed(db, user)
        ensure_storage_initialized(db, user)
        limit = effective_limit(user)
        if (user.documents_used or 0) >= limit:
            raise QuotaExceededError(quota_exceeded_details(user))
        _log_stage(IngestionStage.VALIDATED, user_id, used=f"{user.documents_used}/{limit}")

        text = await run_in_threadpool(extract_text, temp_path, media_type)
        if not text or len(text.strip()) < settings.min_extracted_chars:
            raise InsufficientContentError(
                f"At least {settings.min_extracted_chars} characters of text are required"
            )
        _log_stage(IngestionStage.EXTRACTED, user_id, chars=len(text))

        materials = await generate_study_materials(text, language)
        _log_stage(
            IngestionStage.GENERATED, user_id,
            flashcards=len(materials.flashcards), questions=len(materials.exam_questions),
        )

        document = Document(
            user_id=user.id,
            filename=temp_path.name,
            original_name=original_name,
            file_type=media_type,
            file_size=file_size,
            language=language,
            summary=materials.summary,
            flashcards=[card.model_dump(by_alias=True) for card in materials.flashcards],
            exam_questions=[q.model_dump(by_alias=True) for q in materials.exam_questions],
        )
        try:
            db.add(document)
            db.flush()
            _log_stage(IngestionStage.PERSISTED, user_id, document=document.id)
            record_upload(db, user.id, file_size)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("Could not save the generated document") from e
        db.refresh(document)
        _log_stage(IngestionStage.ACCOUNTED, user_id, document=document.id, bytes=file_size)
        return document

    except StudyAssistantError as e:
        stage = IngestionStage.REJECTED if e.status_code < 500 else IngestionStage.FAILED
        _log_stage(stage, user_id, exc_info=stage == IngestionStage.FAILED, error=e.error, details=e.details)
        raise
    finally:
        if temp_path is not None:
            remove_temp_file(temp_path)
            _log_stage(IngestionStage.CLEANED_UP, user_id)
