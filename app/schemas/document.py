import string
from datetime import datetime
from typing import Literal

from pydantic import field_validator, model_validator

from app.schemas.base import CamelModel

QuestionType = Literal["multiple-choice", "true/false", "short-answer"]
CHOICE_QUESTION_TYPES = ("multiple-choice", "true/false")

# Spellings models commonly produce for each question type
_QUESTION_TYPE_ALIASES = {
    "mcq": "multiple-choice",
    "multiple choice": "multiple-choice",
    "multiple_choice": "multiple-choice",
    "multiplechoice": "multiple-choice",
    "true-false": "true/false",
    "true_false": "true/false",
    "true or false": "true/false",
    "truefalse": "true/false",
    "tf": "true/false",
    "short answer": "short-answer",
    "short_answer": "short-answer",
    "shortanswer": "short-answer",
}


class Flashcard(CamelModel):
    question: str
    answer: str


class ExamQuestion(CamelModel):
    type: QuestionType
    question: str
    options: list[str] = []
    correct_answer: str
    explanation: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: object) -> object:
        if isinstance(v, str):
            key = v.strip().lower()
            return _QUESTION_TYPE_ALIASES.get(key, key)
        return v

    @field_validator("options", mode="before")
    @classmethod
    def normalize_options(cls, v: object) -> object:
        if v is None:
            return []
        # {"A": "...", "B": "..."} -> ["...", "..."]
        if isinstance(v, dict):
            v = list(v.values())
        if isinstance(v, list):
            return [str(o) for o in v]
        return v

    @field_validator("correct_answer", mode="before")
    @classmethod
    def stringify_answer(cls, v: object) -> object:
        if isinstance(v, (bool, int, float)):
            return str(v)
        return v

    @model_validator(mode="after")
    def resolve_option_reference(self):
        """Map a letter reference ("B") or a case/whitespace variant onto the option text."""
        if self.type not in CHOICE_QUESTION_TYPES or not self.options:
            return self
        if self.correct_answer in self.options:
            return self

        answer = self.correct_answer.strip()
        for option in self.options:
            if option.strip().lower() == answer.lower():
                self.correct_answer = option
                return self

        letter = answer.rstrip(".)").upper()
        if len(letter) == 1 and letter in string.ascii_uppercase:
            index = string.ascii_uppercase.index(letter)
            if index < len(self.options):
                self.correct_answer = self.options[index]
        return self

    @property
    def answer_matches_option(self) -> bool:
        return self.type not in CHOICE_QUESTION_TYPES or self.correct_answer in self.options


class StudyMaterials(CamelModel):
    """Generated study materials for one document. Never persisted on its own."""
    summary: str
    flashcards: list[Flashcard]
    exam_questions: list[ExamQuestion]


class DocumentSummary(CamelModel):
    id: int
    original_name: str
    file_type: str
    file_size: int
    language: str
    upload_date: datetime | None = None


class DocumentResponse(CamelModel):
    id: int
    user_id: int
    filename: str
    original_name: str
    file_type: str
    file_size: int
    language: str
    summary: str
    flashcards: list[Flashcard]
    exam_questions: list[ExamQuestion]
    upload_date: datetime | None = None


class UploadedDocument(CamelModel):
    id: int
    filename: str  # original name as uploaded
    summary: str
    flashcards: list[Flashcard]
    exam_questions: list[ExamQuestion]
    upload_date: datetime | None = None


class UploadResponse(CamelModel):
    success: bool = True
    document: UploadedDocument


class DeleteResponse(CamelModel):
    success: bool = True
    message: str | None = None
