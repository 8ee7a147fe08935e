from datetime import datetime

from pydantic import BaseModel, EmailStr, field_validator

from app.models.user import UserPlan, UserRole
from app.schemas.base import CamelModel
from app.schemas.document import DocumentSummary


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    full_name: str


class UserResponse(CamelModel):
    id: int
    email: str
    full_name: str
    role: UserRole
    plan: UserPlan
    banned: bool = False
    ban_reason: str | None = None
    ban_expires: datetime | None = None
    documents_used: int = 0
    monthly_limit: int
    storage_used: int = 0
    last_active: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("storage_used", "documents_used", mode="before")
    @classmethod
    def null_as_zero(cls, v: object) -> object:
        return 0 if v is None else v

    @field_validator("banned", mode="before")
    @classmethod
    def null_as_false(cls, v: object) -> object:
        return bool(v)


class UserProfile(UserResponse):
    """The caller's own account; monthly_limit is the effective limit."""
    remaining_documents: int


class MeResponse(CamelModel):
    user: UserProfile
    documents: list[DocumentSummary]


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
