import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.sql import func

from app.db.database import Base


class AuditAction(str, enum.Enum):
    LIST_USERS = "LIST_USERS"
    CREATE_USER = "CREATE_USER"
    VIEW_USER = "VIEW_USER"
    UPDATE_USER = "UPDATE_USER"
    SET_ROLE = "SET_ROLE"
    DELETE_USER = "DELETE_USER"
    BAN_USER = "BAN_USER"
    UNBAN_USER = "UNBAN_USER"
    VIEW_USER_FILES = "VIEW_USER_FILES"
    DELETE_USER_FILE = "DELETE_USER_FILE"
    VIEW_ANALYTICS = "VIEW_ANALYTICS"
    VIEW_STORAGE = "VIEW_STORAGE"
    RECOMPUTE_STORAGE = "RECOMPUTE_STORAGE"
    VIEW_AUDIT_LOGS = "VIEW_AUDIT_LOGS"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)  # acting admin
    action = Column(String(50), nullable=False)
    target_id = Column(Integer, nullable=True)  # user the action was applied to
    details = Column(Text, nullable=True)  # JSON string with extra context
    ip_address = Column(String(45), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_audit_user_created", "user_id", "created_at"),
        Index("ix_audit_action_created", "action", "created_at"),
    )
