import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.core.rate_limit import limiter
from app.db.database import get_db
from app.models.resource_request import ResourceRequest, RequestStatus
from app.models.user import User
from app.schemas.resource_request import ResourceRequestCreate, ResourceRequestResponse
from app.api.deps import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requests", tags=["Requests"])


@router.post("/", response_model=ResourceRequestResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def create_request(
    data: ResourceRequestCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Ask the admins for material that is not on the platform yet."""
    resource_request = ResourceRequest(
        user_id=current_user.id,
        question=data.question,
        course_code=data.course_code,
        status=RequestStatus.PENDING.value,
    )
    db.add(resource_request)
    db.commit()
    db.refresh(resource_request)
    logger.info(f"Resource request {resource_request.id} created by user {current_user.id}")
    return resource_request


@router.get("/", response_model=list[ResourceRequestResponse])
def list_my_requests(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return (
        db.query(ResourceRequest)
        .filter(ResourceRequest.user_id == current_user.id)
        .order_by(ResourceRequest.created_at.desc(), ResourceRequest.id.desc())
        .all()
    )
