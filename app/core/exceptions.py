"""Domain errors raised by the ingestion pipeline and document services.

Each error carries the HTTP status and the human-readable category that the
exception handler in ``main.py`` turns into ``{"error": ..., "details": ...}``.
"""


class StudyAssistantError(Exception):
    status_code = 500
    error = "Internal server error"

    def __init__(self, details: str | None = None, *, error: str | None = None):
        super().__init__(details or error or self.error)
        self.details = details
        if error:
            self.error = error

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(StudyAssistantError):
    status_code = 400
    error = "Invalid request"


class FileTooLargeError(ValidationError):
    status_code = 413
    error = "File too large"


class NotFoundError(StudyAssistantError):
    status_code = 404
    error = "Not found"


class AccessDeniedError(StudyAssistantError):
    status_code = 403
    error = "Access denied"


class QuotaExceededError(StudyAssistantError):
    status_code = 403
    error = "Monthly upload limit reached"


class ExtractionError(StudyAssistantError):
    status_code = 500
    error = "Failed to extract text from document"


class InsufficientContentError(ExtractionError):
    status_code = 400
    error = "Could not extract enough text from file"


class GenerationError(StudyAssistantError):
    status_code = 500
    error = "Failed to generate study materials"


class PersistenceError(StudyAssistantError):
    status_code = 500
    error = "Failed to save document"
