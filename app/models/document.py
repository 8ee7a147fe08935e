from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, JSON, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.database import Base


class Document(Base):
    """One ingested file and the study materials generated from it."""

    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Source file metadata
    filename = Column(String(512), nullable=False)  # generated temp-storage name
    original_name = Column(String(255), nullable=False)
    file_type = Column(String(255), nullable=False)  # declared media type
    file_size = Column(Integer, nullable=False)  # bytes, double-booked into users.storage_used
    language = Column(String(20), nullable=False, default="english")

    # Generated study materials
    summary = Column(Text, nullable=False)
    flashcards = Column(JSON, nullable=False)
    exam_questions = Column(JSON, nullable=False)

    upload_date = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="documents")

    __table_args__ = (
        Index("ix_documents_user_uploaded", "user_id", "upload_date"),
    )
