from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.core.logging_config import get_logger
from app.db.database import get_db
from app.models.document import Document
from app.models.progress import ExamAttempt, FlashcardProgress
from app.models.user import User
from app.schemas.study import (
    ExamAttemptCreate,
    ExamAttemptResult,
    FlashcardProgressResult,
    FlashcardProgressUpdate,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/study", tags=["Study Tools"])


def _get_owned_document(db: Session, document_id: int, user: User) -> Document:
    """Study progress is personal; admins get no exception here."""
    document = db.query(Document).filter(Document.id == document_id).first()
    if not document:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    if document.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return document


def _find_progress(db: Session, user_id: int, document_id: int, card_index: int) -> FlashcardProgress | None:
    return db.query(FlashcardProgress).filter(
        FlashcardProgress.user_id == user_id,
        FlashcardProgress.document_id == document_id,
        FlashcardProgress.card_index == card_index,
    ).first()


@router.post("/flashcards/progress", response_model=FlashcardProgressResult)
def update_flashcard_progress(
    data: FlashcardProgressUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Record whether one flashcard of a document has been mastered."""
    document = _get_owned_document(db, data.document_id, current_user)
    if data.card_index >= len(document.flashcards or []):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Flashcard index out of range")

    now = datetime.now(timezone.utc)
    progress = _find_progress(db, current_user.id, document.id, data.card_index)
    if progress is None:
        progress = FlashcardProgress(
            user_id=current_user.id,
            document_id=document.id,
            card_index=data.card_index,
            mastered=data.mastered,
            last_reviewed=now,
        )
        db.add(progress)
        try:
            db.commit()
        except IntegrityError:
            # Another request created the row first
            db.rollback()
            progress = _find_progress(db, current_user.id, document.id, data.card_index)
            progress.mastered = data.mastered
            progress.last_reviewed = now
            db.commit()
    else:
        progress.mastered = data.mastered
        progress.last_reviewed = now
        db.commit()

    db.refresh(progress)
    return FlashcardProgressResult(progress=progress)


@router.post("/exams/attempt", response_model=ExamAttemptResult)
def record_exam_attempt(
    data: ExamAttemptCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    document = _get_owned_document(db, data.document_id, current_user)
    if data.score > data.total_questions:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Score cannot exceed total questions")

    attempt = ExamAttempt(
        document_id=document.id,
        user_id=current_user.id,
        score=data.score,
        total_questions=data.total_questions,
        answers=data.answers,
    )
    db.add(attempt)
    db.commit()
    db.refresh(attempt)
    logger.info(f"Exam attempt {attempt.id} | user={current_user.id} | score={data.score}/{data.total_questions}")
    return ExamAttemptResult(attempt=attempt)
