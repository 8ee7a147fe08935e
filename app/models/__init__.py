from app.models.user import User, UserRole, UserPlan
from app.models.document import Document
from app.models.progress import ExamAttempt, FlashcardProgress
from app.models.audit_log import AuditLog, AuditAction

__all__ = [
    "User",
    "UserRole",
    "UserPlan",
    "Document",
    "ExamAttempt",
    "FlashcardProgress",
    "AuditLog",
    "AuditAction",
]
