from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.db.database import get_db
from app.models.document import Document
from app.models.user import User
from app.schemas.document import DocumentSummary
from app.schemas.user import MeResponse, UserProfile, UserResponse
from app.services.quota_service import effective_limit, remaining_documents

router = APIRouter(prefix="/users", tags=["Users"])


def _user_profile(user: User) -> UserProfile:
    """Profile with the effective monthly limit rather than the stored one."""
    data = UserResponse.model_validate(user).model_dump()
    data["monthly_limit"] = effective_limit(user)
    return UserProfile(**data, remaining_documents=remaining_documents(user))


@router.get("/me", response_model=MeResponse)
def get_current_user_info(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    documents = (
        db.query(Document)
        .filter(Document.user_id == current_user.id)
        .order_by(Document.upload_date.desc(), Document.id.desc())
        .all()
    )
    return MeResponse(
        user=_user_profile(current_user),
        documents=[DocumentSummary.model_validate(d) for d in documents],
    )
