"""Document lookups and deletion with storage accounting."""

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import AccessDeniedError, NotFoundError, PersistenceError
from app.core.logging_config import get_logger
from app.models.document import Document
from app.models.user import User
from app.services.quota_service import release_storage

logger = get_logger(__name__)


def get_accessible_document(db: Session, document_id: int, user: User) -> Document:
    """Fetch a document the user owns (admins may access any)."""
    document = db.query(Document).filter(Document.id == document_id).first()
    if not document:
        raise NotFoundError(error="Document not found")
    if not user.is_admin and document.user_id != user.id:
        raise AccessDeniedError()
    return document


def delete_document(db: Session, document: Document) -> None:
    """Delete a document and release its bytes from the owner's storage counter.

    Both happen in one transaction; the counter never drops below zero.
    """
    owner_id, file_size, document_id = document.user_id, document.file_size, document.id
    try:
        db.delete(document)
        db.flush()
        release_storage(db, owner_id, file_size)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to delete document {document_id}: {e}")
        raise PersistenceError("Failed to delete document") from e
    logger.info(f"Deleted document {document_id} | owner={owner_id} | released={file_size} bytes")
