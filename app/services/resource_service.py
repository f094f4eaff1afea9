import logging
import re
import uuid
from pathlib import Path
from urllib.parse import quote

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.utils import course_slug, normalize_course_code
from app.models.bookmark import Bookmark
from app.models.course import Course
from app.models.resource import Resource
from app.schemas.resource import ResourceResponse
from app.services.storage import StorageBackend, get_storage

logger = logging.getLogger(__name__)

ALLOWED_UPLOAD_EXTENSIONS = {".pdf", ".doc", ".docx"}
_FILENAME_SANITIZE = re.compile(r"[^A-Za-z0-9._-]+")
# Outside printable ASCII, or breaks a quoted header parameter
_HEADER_UNSAFE = re.compile(r'[^\x20-\x7e]|["\\]')


class UploadValidationError(ValueError):
    """Raised when an uploaded file violates the upload constraints."""


def validate_upload(filename: str | None, size: int) -> str:
    """Check extension and size; return the bare file name."""
    if not filename:
        raise UploadValidationError("A file is required")
    name = Path(filename).name
    ext = Path(name).suffix.lower()
    if ext not in ALLOWED_UPLOAD_EXTENSIONS:
        raise UploadValidationError(
            f"Unsupported file type: {ext or 'none'}. Allowed: {', '.join(sorted(ALLOWED_UPLOAD_EXTENSIONS))}"
        )
    if size == 0:
        raise UploadValidationError("The uploaded file is empty")
    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    if size > max_bytes:
        raise UploadValidationError(f"File size exceeds maximum allowed size of {settings.max_upload_size_mb} MB")
    return name


def build_object_key(course_code: str, user_id: int, filename: str) -> str:
    """Storage key layout: uploads/<COURSE-SLUG>/<user_id>/<uuid>_<sanitized name>."""
    safe_name = _FILENAME_SANITIZE.sub("_", Path(filename).name).strip("._") or "file"
    prefix = settings.uploads_prefix.rstrip("/")
    return f"{prefix}/{course_slug(course_code)}/{user_id}/{uuid.uuid4().hex}_{safe_name}"


def get_course_by_code(db: Session, code: str) -> Course | None:
    return db.query(Course).filter(Course.code == normalize_course_code(code)).first()


def get_or_create_course(db: Session, code: str, level: str | None = None) -> Course:
    """Find a course by code, creating a placeholder (name = code) when it does not exist."""
    course = get_course_by_code(db, code)
    if course:
        return course
    normalized = normalize_course_code(code)
    course = Course(code=normalized, name=normalized, level=level)
    db.add(course)
    db.flush()
    logger.info(f"Created course {normalized} on first upload")
    return course


def bookmarked_ids(db: Session, user_id: int | None) -> set[int]:
    if user_id is None:
        return set()
    rows = db.query(Bookmark.resource_id).filter(Bookmark.user_id == user_id).all()
    return {r[0] for r in rows}


def to_response(
    resource: Resource,
    bookmarks: set[int] | None = None,
    storage: StorageBackend | None = None,
) -> ResourceResponse:
    resp = ResourceResponse.model_validate(resource)
    resp.file_url = (storage or get_storage()).public_url(resource.file_path)
    resp.is_bookmarked = resource.id in (bookmarks or set())
    return resp


def content_disposition(filename: str, inline: bool = False) -> str:
    """Header value with an ASCII fallback name plus the UTF-8 name (RFC 5987)."""
    disposition = "inline" if inline else "attachment"
    name = Path(filename)
    stem = _HEADER_UNSAFE.sub("_", name.stem).strip("._ ") or "download"
    fallback = stem + _HEADER_UNSAFE.sub("", name.suffix)
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"
