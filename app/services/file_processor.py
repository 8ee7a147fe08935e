"""
Text extraction for uploaded study documents.
Supports: PDF, Word (.docx) and PowerPoint (.pptx).
"""

from pathlib import Path

import PyPDF2
from docx import Document as WordDocument
from pptx import Presentation

from app.core.config import settings
from app.core.exceptions import ExtractionError
from app.core.logging_config import get_logger

PDF_MEDIA_TYPE = "application/pdf"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PPTX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.presentationml.presentation"

SUPPORTED_MEDIA_TYPES = {
    PDF_MEDIA_TYPE: ".pdf",
    DOCX_MEDIA_TYPE: ".docx",
    PPTX_MEDIA_TYPE: ".pptx",
}

logger = get_logger(__name__)


def is_supported_media_type(media_type: str | None) -> bool:
    return (media_type or "").split(";")[0].strip().lower() in SUPPORTED_MEDIA_TYPES


def extract_text_from_pdf(path: Path) -> str:
    """Extract text from PDF file."""
    try:
        with open(path, "rb") as fh:
            pdf_reader = PyPDF2.PdfReader(fh)
            text_parts = []
            page_count = len(pdf_reader.pages)
            logger.debug(f"Processing PDF with {page_count} pages")
            for page in pdf_reader.pages:
                text = page.extract_text()
                if text:
                    text_parts.append(text)
        logger.debug(f"Extracted text from {len(text_parts)} pages")
        return "\n\n".join(text_parts)
    except Exception as e:
        logger.error(f"PDF extraction failed: {str(e)}")
        raise ExtractionError(f"Failed to extract text from PDF: {str(e)}") from e


def extract_text_from_docx(path: Path) -> str:
    """Extract text from Word document (.docx)."""
    try:
        doc = WordDocument(str(path))
        text_parts = []
        for paragraph in doc.paragraphs:
            if paragraph.text.strip():
                text_parts.append(paragraph.text)
        for table in doc.tables:
            for row in table.rows:
                row_text = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if row_text:
                    text_parts.append(" | ".join(row_text))
        return "\n\n".join(text_parts)
    except Exception as e:
        logger.error(f"Word extraction failed: {str(e)}")
        raise ExtractionError(f"Failed to extract text from Word document: {str(e)}") from e


def extract_text_from_pptx(path: Path) -> str:
    """Extract text from PowerPoint presentation (.pptx)."""
    try:
        prs = Presentation(str(path))
        text_parts = []
        for slide_num, slide in enumerate(prs.slides, 1):
            slide_text = [f"--- Slide {slide_num} ---"]
            for shape in slide.shapes:
                if getattr(shape, "has_text_frame", False) and shape.text_frame.text.strip():
                    slide_text.append(shape.text_frame.text)
                elif getattr(shape, "has_table", False):
                    for row in shape.table.rows:
                        row_text = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                        if row_text:
                            slide_text.append(" | ".join(row_text))
            if slide.has_notes_slide and slide.notes_slide.notes_text_frame is not None:
                notes = slide.notes_slide.notes_text_frame.text.strip()
                if notes:
                    slide_text.append(f"Notes: {notes}")
            if len(slide_text) > 1:  # More than just the slide header
                text_parts.append("\n".join(slide_text))
        return "\n\n".join(text_parts)
    except Exception as e:
        logger.error(f"PowerPoint extraction failed: {str(e)}")
        raise ExtractionError(f"Failed to extract text from PowerPoint: {str(e)}") from e


def extract_text(path: str | Path, media_type: str) -> str:
    """
    Extract plain text from a stored upload.

    The file is only read; callers own its lifecycle.

    Args:
        path: Location of the uploaded file
        media_type: Declared media type of the upload

    Returns:
        Extracted text content (possibly empty)

    Raises:
        ExtractionError: If the type is unsupported or the decoder fails
    """
    path = Path(path)
    normalized = (media_type or "").split(";")[0].strip().lower()
    logger.info(f"Extracting text: {path.name} ({normalized})")

    if normalized == PDF_MEDIA_TYPE:
        return extract_text_from_pdf(path)
    elif normalized == DOCX_MEDIA_TYPE:
        return extract_text_from_docx(path)
    elif normalized == PPTX_MEDIA_TYPE:
        return extract_text_from_pptx(path)
    else:
        raise ExtractionError(f"Unsupported media type: {media_type}")


def get_supported_formats() -> dict:
    """Return information about supported file formats."""
    return {
        "mediaTypes": sorted(SUPPORTED_MEDIA_TYPES),
        "extensions": sorted(SUPPORTED_MEDIA_TYPES.values()),
        "maxFileSizeMb": settings.max_upload_size_mb,
    }
