import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from app.db.database import get_db
from app.models.audit_log import AuditAction
from app.models.course import Course
from app.models.notification import NotificationType
from app.models.resource import Resource, ResourceStatus
from app.models.resource_request import ResourceRequest, RequestStatus
from app.models.user import User, UserRole
from app.api.deps import require_role
from app.schemas.admin import AdminStats, RejectRequest
from app.schemas.audit import AuditLogResponse, AuditLogList
from app.schemas.resource import ResourceResponse
from app.schemas.resource_request import (
    AdminResourceRequestList, AdminResourceRequestResponse, RequestRespond,
)
from app.services.audit_service import client_ip, log_action, search_audit_logs
from app.services.notification_service import email_user, notify_user
from app.services.resource_service import content_disposition, to_response
from app.services.storage import ObjectNotFoundError, StorageBackend, StorageError, get_storage, guess_content_type
from app.services.user_service import full_names_by_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


def _get_resource_or_404(db: Session, resource_id: int) -> Resource:
    resource = (
        db.query(Resource)
        .options(joinedload(Resource.course), joinedload(Resource.uploaded_by))
        .filter(Resource.id == resource_id)
        .first()
    )
    if not resource:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Resource not found")
    return resource


# ── Moderation ──────────────────────────────────────────────────


@router.get("/resources/pending", response_model=list[ResourceResponse])
def list_pending_resources(
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    """Uploads waiting for review, oldest first."""
    resources = (
        db.query(Resource)
        .options(joinedload(Resource.course), joinedload(Resource.uploaded_by))
        .filter(Resource.status == ResourceStatus.PENDING.value)
        .order_by(Resource.created_at.asc(), Resource.id.asc())
        .all()
    )
    return [to_response(r, storage=storage) for r in resources]


@router.post("/resources/{resource_id}/approve", response_model=ResourceResponse)
def approve_resource(
    resource_id: int,
    request: Request,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    resource = _get_resource_or_404(db, resource_id)
    if resource.status != ResourceStatus.PENDING.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Resource is already {resource.status}")

    resource.status = ResourceStatus.APPROVED.value
    resource.reviewed_by_user_id = current_user.id
    resource.reviewed_at = datetime.now(timezone.utc)

    uploader = resource.uploaded_by
    title = "Upload approved"
    content = f'Your upload "{resource.title}" for {resource.course_code} has been published.'
    if uploader:
        notify_user(db, uploader, NotificationType.RESOURCE_APPROVED, title, content, link=f"/resources/{resource.id}")

    log_action(db, user_id=current_user.id, action=AuditAction.APPROVE.value, resource_type="resource",
               resource_id=resource.id, ip_address=client_ip(request))
    db.commit()
    db.refresh(resource)

    if uploader:
        email_user(uploader, title, content, link=f"/resources/{resource.id}")
    logger.info(f"Resource {resource.id} approved by admin {current_user.id}")
    return to_response(resource, storage=storage)


@router.post("/resources/{resource_id}/reject", response_model=ResourceResponse)
def reject_resource(
    resource_id: int,
    request: Request,
    data: RejectRequest | None = None,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    """Reject an upload and remove its stored file."""
    resource = _get_resource_or_404(db, resource_id)
    if resource.status == ResourceStatus.REJECTED.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Resource is already rejected")

    reason = (data.reason or "").strip() if data else ""
    resource.status = ResourceStatus.REJECTED.value
    resource.reviewed_by_user_id = current_user.id
    resource.reviewed_at = datetime.now(timezone.utc)

    uploader = resource.uploaded_by
    title = "Upload removed"
    content = f'Your upload "{resource.title}" has been removed.'
    if reason:
        content += f" Reason: {reason}"
    if uploader:
        notify_user(db, uploader, NotificationType.RESOURCE_REJECTED, title, content)

    log_action(db, user_id=current_user.id, action=AuditAction.REJECT.value, resource_type="resource",
               resource_id=resource.id, details={"reason": reason} if reason else None,
               ip_address=client_ip(request))
    db.commit()
    db.refresh(resource)

    # Only drop the file once the rejection is stored
    try:
        storage.delete(resource.file_path)
    except ObjectNotFoundError:
        logger.warning(f"Stored file already gone for rejected resource {resource.id}: {resource.file_path}")
    except StorageError as e:
        logger.error(f"Could not remove file of rejected resource {resource.id}: {resource.file_path} | error={e}")

    if uploader:
        email_user(uploader, title, content)
    logger.info(f"Resource {resource.id} rejected by admin {current_user.id}")
    return to_response(resource, storage=storage)


@router.post("/resources/{resource_id}/verify", response_model=ResourceResponse)
def toggle_verified(
    resource_id: int,
    request: Request,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    """Flip the verified badge."""
    resource = _get_resource_or_404(db, resource_id)
    resource.verified = not resource.verified
    log_action(db, user_id=current_user.id, action=AuditAction.VERIFY.value, resource_type="resource",
               resource_id=resource.id, details={"verified": resource.verified}, ip_address=client_ip(request))
    db.commit()
    db.refresh(resource)
    return to_response(resource, storage=storage)


@router.get("/resources/{resource_id}/preview")
def preview_resource(
    resource_id: int,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    resource = _get_resource_or_404(db, resource_id)
    try:
        data = storage.get(resource.file_path)
    except ObjectNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return Response(
        content=data,
        media_type=resource.content_type or guess_content_type(resource.file_name),
        headers={"Content-Disposition": content_disposition(resource.file_name, inline=True)},
    )


# ── Platform overview ───────────────────────────────────────────


@router.get("/stats", response_model=AdminStats)
def get_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    """Get platform statistics."""
    by_status = {s.value: 0 for s in ResourceStatus}
    for status_value, count in db.query(Resource.status, func.count(Resource.id)).group_by(Resource.status).all():
        by_status[status_value] = count

    return AdminStats(
        total_users=db.query(User).count(),
        total_courses=db.query(Course).count(),
        resources_by_status=by_status,
        verified_resources=db.query(Resource).filter(Resource.verified == True).count(),
        total_downloads=db.query(func.coalesce(func.sum(Resource.downloads), 0)).scalar(),
        pending_requests=db.query(ResourceRequest)
        .filter(ResourceRequest.status == RequestStatus.PENDING.value)
        .count(),
    )


@router.get("/audit-logs", response_model=AuditLogList)
def list_audit_logs(
    user_id: int | None = None,
    action: str | None = None,
    resource_type: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    search: str | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    """Audit trail, newest first, with the acting user's name."""
    query = search_audit_logs(
        db, user_id=user_id, action=action, resource_type=resource_type,
        date_from=date_from, date_to=date_to, search=search,
    )
    total = query.count()
    logs = query.offset(skip).limit(limit).all()
    user_map = full_names_by_id(db, (log.user_id for log in logs))

    items = [
        AuditLogResponse(
            id=log.id,
            user_id=log.user_id,
            user_name=user_map.get(log.user_id),
            action=log.action,
            resource_type=log.resource_type,
            resource_id=log.resource_id,
            details=log.details,
            ip_address=log.ip_address,
            created_at=log.created_at,
        )
        for log in logs
    ]
    return AuditLogList(items=items, total=total)


# ── Resource requests ───────────────────────────────────────────


@router.get("/requests", response_model=AdminResourceRequestList)
def list_resource_requests(
    status_filter: str | None = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    """All missing-material requests, newest first.

    ``status`` accepts pending, responded (fulfilled or rejected), fulfilled,
    rejected or all.
    """
    query = db.query(ResourceRequest).options(joinedload(ResourceRequest.user))
    wanted = (status_filter or "all").strip().lower()
    if wanted == "responded":
        query = query.filter(ResourceRequest.status != RequestStatus.PENDING.value)
    elif wanted in {s.value for s in RequestStatus}:
        query = query.filter(ResourceRequest.status == wanted)
    elif wanted != "all":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid status filter: {status_filter}")

    total = query.count()
    items = (
        query.order_by(ResourceRequest.created_at.desc(), ResourceRequest.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    pending_count = db.query(ResourceRequest).filter(ResourceRequest.status == RequestStatus.PENDING.value).count()
    responded_count = db.query(ResourceRequest).filter(ResourceRequest.status != RequestStatus.PENDING.value).count()

    return AdminResourceRequestList(
        items=[AdminResourceRequestResponse.model_validate(r) for r in items],
        total=total,
        pending_count=pending_count,
        responded_count=responded_count,
    )


@router.post("/requests/{request_id}/respond", response_model=AdminResourceRequestResponse)
def respond_to_request(
    request_id: int,
    data: RequestRespond,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    resource_request = (
        db.query(ResourceRequest)
        .options(joinedload(ResourceRequest.user))
        .filter(ResourceRequest.id == request_id)
        .first()
    )
    if not resource_request:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")

    response_text = data.admin_response.strip()
    if not response_text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Response required")

    resource_request.status = data.status
    resource_request.admin_response = response_text
    resource_request.responded_by_user_id = current_user.id
    resource_request.updated_at = datetime.now(timezone.utc)

    requester = resource_request.user
    title = "Your resource request was answered"
    if requester:
        notify_user(db, requester, NotificationType.REQUEST_RESPONDED, title, response_text, link="/requests")

    log_action(db, user_id=current_user.id, action=AuditAction.RESPOND_REQUEST.value,
               resource_type="resource_request", resource_id=resource_request.id,
               details={"status": data.status}, ip_address=client_ip(request))
    db.commit()
    db.refresh(resource_request)

    if requester:
        email_user(requester, title, response_text, link="/requests")
    return AdminResourceRequestResponse.model_validate(resource_request)
