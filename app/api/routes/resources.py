import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, Response, UploadFile, status
from pydantic import ValidationError
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.core.rate_limit import limiter
from app.core.utils import escape_like, normalize_course_code
from app.db.database import get_db
from app.models.audit_log import AuditAction
from app.models.course import Course
from app.models.resource import Resource, ResourceStatus
from app.models.user import User
from app.schemas.resource import ResourceList, ResourceMetadata, ResourceResponse, normalize_resource_type, normalize_semester
from app.api.deps import get_current_user, get_optional_user
from app.services.audit_service import client_ip, log_action
from app.services.resource_service import (
    UploadValidationError,
    bookmarked_ids,
    build_object_key,
    content_disposition,
    get_or_create_course,
    to_response,
    validate_upload,
)
from app.services.storage import ObjectNotFoundError, StorageBackend, StorageError, get_storage, guess_content_type

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/resources", tags=["Resources"])


def _filter_value(value: str | None) -> str | None:
    """Blank and "all" mean no filter."""
    if value is None or not value.strip() or value.strip().lower() == "all":
        return None
    return value.strip()


def validation_detail(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = err.get("msg", "").removeprefix("Value error, ")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


def can_view(resource: Resource, user: User | None) -> bool:
    if resource.status == ResourceStatus.APPROVED.value:
        return True
    return user is not None and (user.is_admin or resource.uploaded_by_user_id == user.id)


def _with_relations(db: Session):
    return db.query(Resource).options(joinedload(Resource.course), joinedload(Resource.uploaded_by))


def _get_visible_or_404(db: Session, resource_id: int, user: User | None) -> Resource:
    resource = _with_relations(db).filter(Resource.id == resource_id).first()
    if not resource or not can_view(resource, user):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Resource not found")
    return resource


def _key_in_use(db: Session, key: str) -> bool:
    """True when some resource references the key, or when that cannot be checked."""
    try:
        return db.query(Resource.id).filter(Resource.file_path == key).first() is not None
    except SQLAlchemyError as e:
        logger.error(f"Could not check references to {key}: {e}")
        db.rollback()
        return True


@router.post("/", response_model=ResourceResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def upload_resource(
    request: Request,
    file: UploadFile = File(...),
    course_code: str = Form(...),
    title: str = Form(...),
    resource_type: str = Form(...),
    year: str | None = Form(None),
    semester: str | None = Form(None),
    level: str | None = Form(None),
    exam_type: str | None = Form(None),
    description: str | None = Form(None),
    tags: str | None = Form(None),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    """Upload a study file. It stays pending until an admin approves it."""
    try:
        meta = ResourceMetadata(
            course_code=course_code, title=title, resource_type=resource_type, year=year,
            semester=semester, level=level, exam_type=exam_type, description=description, tags=tags,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=validation_detail(e))

    content = await file.read()
    try:
        file_name = validate_upload(file.filename, len(content))
    except UploadValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    key = build_object_key(meta.course_code, current_user.id, file_name)
    content_type = file.content_type or guess_content_type(file_name)
    try:
        storage.put(key, content, content_type)
    except StorageError as e:
        logger.error(f"Upload storage failed | user={current_user.id} | key={key} | error={e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="File storage unavailable")

    try:
        course = get_or_create_course(db, meta.course_code, meta.level)
        resource = Resource(
            course_id=course.id,
            title=meta.title,
            resource_type=meta.resource_type,
            year=meta.year,
            semester=meta.semester,
            level=meta.level or course.level,
            exam_type=meta.exam_type,
            description=meta.description,
            tags=",".join(meta.tags) or None,
            file_path=key,
            file_name=file_name,
            file_size=len(content),
            content_type=content_type,
            status=ResourceStatus.PENDING.value,
            uploaded_by_user_id=current_user.id,
        )
        db.add(resource)
        db.flush()
        log_action(db, user_id=current_user.id, action=AuditAction.UPLOAD.value, resource_type="resource",
                   resource_id=resource.id, details={"file_path": key, "course": course.code},
                   ip_address=client_ip(request))
        db.commit()
    except Exception:
        db.rollback()
        # Whatever cannot be cleaned up here shows in the admin orphan list
        if _key_in_use(db, key):
            logger.warning(f"Keeping stored object after failed insert, a resource now points at it: {key}")
        else:
            try:
                storage.delete(key)
            except StorageError:
                logger.warning(f"Could not remove stored object after failed insert: {key}")
        raise

    logger.info(f"Resource {resource.id} uploaded by user {current_user.id} | key={key} | size={len(content)}")
    resource = _with_relations(db).filter(Resource.id == resource.id).first()
    return to_response(resource, storage=storage)


@router.get("/", response_model=ResourceList)
def list_resources(
    course_code: str | None = None,
    year: str | None = None,
    semester: str | None = None,
    resource_type: str | None = None,
    verified: str | None = None,
    search: str | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User | None = Depends(get_optional_user),
):
    """Browse approved resources, newest first. Public."""
    query = (
        _with_relations(db)
        .join(Course, Resource.course_id == Course.id)
        .filter(Resource.status == ResourceStatus.APPROVED.value)
    )

    course_code = _filter_value(course_code)
    if course_code:
        query = query.filter(Course.code == normalize_course_code(course_code))
    year = _filter_value(year)
    if year:
        query = query.filter(Resource.year == year)
    semester = _filter_value(semester)
    if semester:
        try:
            query = query.filter(Resource.semester == normalize_semester(semester))
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    resource_type = _filter_value(resource_type)
    if resource_type:
        try:
            query = query.filter(Resource.resource_type == normalize_resource_type(resource_type))
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    verified = _filter_value(verified)
    if verified:
        query = query.filter(Resource.verified == (verified.lower() in ("true", "1", "yes", "verified")))
    search = _filter_value(search)
    if search:
        search_term = f"%{escape_like(search)}%"
        query = query.filter(
            or_(
                Resource.title.ilike(search_term, escape="\\"),
                Resource.description.ilike(search_term, escape="\\"),
                Resource.tags.ilike(search_term, escape="\\"),
                Course.code.ilike(search_term, escape="\\"),
                Course.name.ilike(search_term, escape="\\"),
            )
        )

    total = query.count()
    resources = query.order_by(Resource.created_at.desc(), Resource.id.desc()).offset(skip).limit(limit).all()
    bookmarks = bookmarked_ids(db, current_user.id if current_user else None)
    return ResourceList(items=[to_response(r, bookmarks, storage) for r in resources], total=total)


@router.get("/recent", response_model=list[ResourceResponse])
def recent_resources(
    limit: int = Query(6, ge=1, le=50),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User | None = Depends(get_optional_user),
):
    """Most recently approved resources, for the home page."""
    resources = (
        _with_relations(db)
        .filter(Resource.status == ResourceStatus.APPROVED.value)
        .order_by(func.coalesce(Resource.reviewed_at, Resource.created_at).desc(), Resource.id.desc())
        .limit(limit)
        .all()
    )
    bookmarks = bookmarked_ids(db, current_user.id if current_user else None)
    return [to_response(r, bookmarks, storage) for r in resources]


@router.get("/mine", response_model=list[ResourceResponse])
def my_resources(
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    """The caller's uploads in any status."""
    resources = (
        _with_relations(db)
        .filter(Resource.uploaded_by_user_id == current_user.id)
        .order_by(Resource.created_at.desc(), Resource.id.desc())
        .all()
    )
    bookmarks = bookmarked_ids(db, current_user.id)
    return [to_response(r, bookmarks, storage) for r in resources]


@router.get("/{resource_id}", response_model=ResourceResponse)
def get_resource(
    resource_id: int,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User | None = Depends(get_optional_user),
):
    resource = _get_visible_or_404(db, resource_id, current_user)
    bookmarks = bookmarked_ids(db, current_user.id if current_user else None)
    return to_response(resource, bookmarks, storage)


@router.get("/{resource_id}/download")
def download_resource(
    resource_id: int,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User | None = Depends(get_optional_user),
):
    """Return the stored file as an attachment and count the download."""
    resource = _get_visible_or_404(db, resource_id, current_user)
    try:
        data = storage.get(resource.file_path)
    except ObjectNotFoundError:
        logger.error(f"Stored file missing for resource {resource.id}: {resource.file_path}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    db.query(Resource).filter(Resource.id == resource.id).update(
        {Resource.downloads: Resource.downloads + 1}, synchronize_session=False
    )
    db.commit()

    return Response(
        content=data,
        media_type=resource.content_type or guess_content_type(resource.file_name),
        headers={"Content-Disposition": content_disposition(resource.file_name)},
    )


@router.delete("/{resource_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_resource(
    resource_id: int,
    request: Request,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    """Uploaders may withdraw a pending upload; admins may delete any resource."""
    resource = _get_visible_or_404(db, resource_id, current_user)
    is_owner = resource.uploaded_by_user_id == current_user.id
    if not current_user.is_admin and not (is_owner and resource.status == ResourceStatus.PENDING.value):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")

    file_path = resource.file_path
    log_action(db, user_id=current_user.id, action=AuditAction.DELETE.value, resource_type="resource",
               resource_id=resource.id, details={"file_path": file_path, "title": resource.title},
               ip_address=client_ip(request))
    db.delete(resource)
    db.commit()

    try:
        storage.delete(file_path)
    except ObjectNotFoundError:
        logger.warning(f"Stored file already gone for deleted resource {resource_id}: {file_path}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
