from app.schemas.user import UserCreate, UserResponse, UserProfile, MeResponse, Token
from app.schemas.document import (
    Flashcard,
    ExamQuestion,
    StudyMaterials,
    DocumentSummary,
    DocumentResponse,
    UploadResponse,
)

__all__ = [
    "UserCreate", "UserResponse", "UserProfile", "MeResponse", "Token",
    "Flashcard", "ExamQuestion", "StudyMaterials",
    "DocumentSummary", "DocumentResponse", "UploadResponse",
]
