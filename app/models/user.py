from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, Enum, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum

from app.db.database import Base


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class UserPlan(str, enum.Enum):
    FREE = "free"
    PREMIUM = "premium"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.USER)
    plan = Column(Enum(UserPlan), nullable=False, default=UserPlan.FREE)

    # Monthly quota, lazily reset by quota_service
    documents_used = Column(Integer, nullable=False, default=0)
    monthly_limit = Column(Integer, nullable=False, default=5)
    last_reset = Column(DateTime(timezone=True), server_default=func.now())

    # Denormalized sum of documents.file_size; repaired by recompute_storage_usage.
    # Nullable for rows that predate the column.
    storage_used = Column(BigInteger, nullable=True, default=0)

    # Suspension
    banned = Column(Boolean, default=False)
    ban_reason = Column(Text, nullable=True)
    ban_expires = Column(DateTime(timezone=True), nullable=True)

    last_active = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    documents = relationship(
        "Document",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Document.upload_date.desc()",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_premium(self) -> bool:
        return self.plan == UserPlan.PREMIUM
