from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.db.database import get_db
from app.models.document import Document
from app.models.user import User
from app.schemas.document import (
    DeleteResponse,
    DocumentResponse,
    DocumentSummary,
    UploadedDocument,
    UploadResponse,
)
from app.services.document_service import delete_document, get_accessible_document
from app.services.file_processor import get_supported_formats
from app.services.ingestion import ingest_document

router = APIRouter(prefix="/documents", tags=["Documents"])


@router.get("/formats")
def get_upload_formats():
    """Get information about supported file upload formats."""
    return get_supported_formats()


@router.post("/upload", response_model=UploadResponse)
async def upload_document(
    file: UploadFile = File(...),
    language: str = Form("english"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Upload a PDF, DOCX or PPTX and generate a summary, flashcards and exam questions.

    Counts against the caller's monthly quota only when the document is saved.
    """
    document = await ingest_document(db, user_id=current_user.id, upload=file, language=language)
    return UploadResponse(
        document=UploadedDocument(
            id=document.id,
            filename=document.original_name,
            summary=document.summary,
            flashcards=document.flashcards,
            exam_questions=document.exam_questions,
            upload_date=document.upload_date,
        )
    )


@router.get("", response_model=list[DocumentSummary])
def list_documents(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return (
        db.query(Document)
        .filter(Document.user_id == current_user.id)
        .order_by(Document.upload_date.desc(), Document.id.desc())
        .all()
    )


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return get_accessible_document(db, document_id, current_user)


@router.delete("/{document_id}", response_model=DeleteResponse)
def remove_document(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    document = get_accessible_document(db, document_id, current_user)
    delete_document(db, document)
    return DeleteResponse(message="Document deleted")
