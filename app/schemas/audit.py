from datetime import datetime

from app.schemas.base import CamelModel


class AuditLogResponse(CamelModel):
    id: int
    user_id: int | None = None
    user_name: str | None = None
    action: str
    target_id: int | None = None
    details: str | None = None
    ip_address: str | None = None
    created_at: datetime | None = None


class AuditLogList(CamelModel):
    logs: list[AuditLogResponse]
    total: int
