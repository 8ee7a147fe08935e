from datetime import datetime

from pydantic import EmailStr, Field

from app.models.user import UserPlan, UserRole
from app.schemas.base import CamelModel
from app.schemas.user import UserResponse


class AdminUserCreate(CamelModel):
    email: EmailStr
    full_name: str
    password: str | None = None  # accounts without one cannot log in with a password
    role: UserRole = UserRole.USER
    plan: UserPlan = UserPlan.FREE
    monthly_limit: int | None = Field(default=None, ge=1)


class AdminUserUpdate(CamelModel):
    full_name: str | None = None
    plan: UserPlan | None = None
    monthly_limit: int | None = Field(default=None, ge=1)
    role: UserRole | None = None


class SuspendRequest(CamelModel):
    reason: str | None = None
    ban_expires: datetime | None = None


class AdminUserItem(UserResponse):
    document_count: int = 0


class AdminUserList(CamelModel):
    users: list[AdminUserItem]
    total: int


class AdminUserStats(CamelModel):
    documents: int
    exam_attempts: int
    flashcard_progress: int


class AdminUserDetail(CamelModel):
    user: UserResponse
    stats: AdminUserStats


class AdminUserResult(CamelModel):
    user: UserResponse


class UserFileItem(CamelModel):
    id: int
    original_name: str
    file_size: int
    file_type: str
    language: str
    upload_date: datetime | None = None


class UserFileList(CamelModel):
    documents: list[UserFileItem]


class AnalyticsTotals(CamelModel):
    users: int
    documents: int
    storage_bytes: int


class ActiveUsers(CamelModel):
    last_24h: int = Field(alias="last24h")
    last_7d: int = Field(alias="last7d")
    last_30d: int = Field(alias="last30d")


class AnalyticsResponse(CamelModel):
    totals: AnalyticsTotals
    active_users: ActiveUsers


class StorageItem(CamelModel):
    id: int
    full_name: str
    email: str
    storage_used: int
    documents_used: int
    document_count: int


class StorageBreakdown(CamelModel):
    users: list[StorageItem]


class StorageRecomputeResponse(CamelModel):
    success: bool = True
    users_updated: int


class SuccessResponse(CamelModel):
    success: bool = True
