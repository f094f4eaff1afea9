"""
Admin reconciliation of stored uploads that no resource row points at.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.database import get_db
from app.models.audit_log import AuditAction
from app.models.resource import Resource, ResourceStatus
from app.models.user import User, UserRole
from app.api.deps import require_role
from app.schemas.admin import OrphanFile, OrphanList, OrphanPublish
from app.schemas.resource import ResourceResponse
from app.services.audit_service import client_ip, log_action
from app.services.reconciliation import Orphan, filter_orphans, find_orphans, infer_from_key
from app.services.resource_service import get_or_create_course, to_response
from app.services.storage import (
    ObjectNotFoundError, StorageBackend, StorageError, StoredObject, get_storage, guess_content_type,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/orphans", tags=["Admin"])


def _to_item(orphan: Orphan, storage: StorageBackend) -> OrphanFile:
    inferred = orphan.inferred
    return OrphanFile(
        file_path=orphan.object.key,
        file_name=inferred.file_name,
        size=orphan.object.size,
        last_modified=orphan.object.last_modified,
        file_url=storage.public_url(orphan.object.key),
        inferred_course_code=inferred.course_code,
        inferred_title=inferred.title,
        inferred_resource_type=inferred.resource_type,
        inferred_year=inferred.year,
        contributor_id=inferred.contributor_id,
        contributor_name=orphan.contributor_name,
    )


def _check_upload_key(key: str) -> None:
    if not key.startswith(settings.uploads_prefix):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"file_path must be under {settings.uploads_prefix}",
        )


def _lookup(storage: StorageBackend, key: str) -> StoredObject | None:
    """Find one object by exact key through a prefix listing (also yields its size)."""
    try:
        objects, _ = storage.list_page(key)
    except StorageError as e:
        logger.error(f"Storage lookup failed | key={key} | error={e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="File storage unavailable")
    return next((o for o in objects if o.key == key), None)


def _is_linked(db: Session, key: str) -> bool:
    return db.query(Resource.id).filter(Resource.file_path == key).first() is not None


@router.get("", response_model=OrphanList)
def list_orphans(
    search: str | None = None,
    course_code: str | None = None,
    contributor_id: int | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    """Stored uploads with no matching resource, newest first, with inferred metadata."""
    try:
        orphans = find_orphans(db, storage)
    except StorageError as e:
        logger.error(f"Orphan scan failed | error={e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="File storage unavailable")

    if course_code and course_code.strip().lower() == "all":
        course_code = None
    matched = filter_orphans(orphans, search=search, course_code=course_code, contributor_id=contributor_id)
    page = matched[skip: skip + limit]
    return OrphanList(items=[_to_item(o, storage) for o in page], total=len(matched))


@router.post("/publish", response_model=ResourceResponse, status_code=status.HTTP_201_CREATED)
def publish_orphan(
    data: OrphanPublish,
    request: Request,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    """Create an approved resource that points at an existing orphaned object."""
    key = data.file_path
    _check_upload_key(key)
    if _is_linked(db, key):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="File is already linked to a resource")
    stored = _lookup(storage, key)
    if stored is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found in storage")

    inferred = infer_from_key(key)
    contributor_id = data.contributor_id if data.contributor_id is not None else inferred.contributor_id
    if contributor_id is not None and not db.query(User.id).filter(User.id == contributor_id).first():
        if data.contributor_id is not None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Contributor not found")
        contributor_id = None

    course = get_or_create_course(db, data.course_code, data.level)
    resource = Resource(
        course_id=course.id,
        title=data.title,
        resource_type=data.resource_type,
        year=data.year,
        semester=data.semester,
        level=data.level or course.level,
        exam_type=data.exam_type,
        description=data.description,
        tags=",".join(data.tags) or None,
        file_path=key,
        file_name=inferred.file_name,
        file_size=stored.size,
        content_type=guess_content_type(inferred.file_name),
        status=ResourceStatus.APPROVED.value,
        verified=data.verified,
        uploaded_by_user_id=contributor_id,
        reviewed_by_user_id=current_user.id,
        reviewed_at=datetime.now(timezone.utc),
    )
    db.add(resource)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="File is already linked to a resource")

    log_action(db, user_id=current_user.id, action=AuditAction.PUBLISH_ORPHAN.value, resource_type="resource",
               resource_id=resource.id, details={"file_path": key, "contributor_id": contributor_id},
               ip_address=client_ip(request))
    db.commit()
    db.refresh(resource)
    logger.info(f"Orphan {key} published as resource {resource.id} by admin {current_user.id}")
    return to_response(resource, storage=storage)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def delete_orphan(
    request: Request,
    file_path: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    """Delete an orphaned object. Objects still referenced by a resource are refused."""
    key = file_path.strip()
    _check_upload_key(key)
    if _is_linked(db, key):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="File is linked to a resource")
    if _lookup(storage, key) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found in storage")

    try:
        storage.delete(key)
    except ObjectNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found in storage")
    except StorageError as e:
        logger.error(f"Orphan delete failed | key={key} | error={e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="File storage unavailable")

    log_action(db, user_id=current_user.id, action=AuditAction.DELETE_ORPHAN.value, resource_type="storage_object",
               details={"file_path": key}, ip_address=client_ip(request))
    db.commit()
    logger.info(f"Orphan {key} deleted by admin {current_user.id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
