from datetime import datetime
from typing import Any

from pydantic import Field

from app.schemas.base import CamelModel


class FlashcardProgressUpdate(CamelModel):
    """Mark one flashcard of a document as mastered (or not)."""
    document_id: int
    card_index: int = Field(ge=0)
    mastered: bool = False


class FlashcardProgressResponse(CamelModel):
    id: int
    document_id: int
    user_id: int
    card_index: int
    mastered: bool
    last_reviewed: datetime | None = None


class FlashcardProgressResult(CamelModel):
    success: bool = True
    progress: FlashcardProgressResponse


class ExamAttemptCreate(CamelModel):
    document_id: int
    score: int = Field(ge=0)
    total_questions: int = Field(ge=0)
    answers: Any = None


class ExamAttemptResponse(CamelModel):
    id: int
    document_id: int
    user_id: int
    score: int
    total_questions: int
    answers: Any = None
    completed_at: datetime | None = None


class ExamAttemptResult(CamelModel):
    success: bool = True
    attempt: ExamAttemptResponse
