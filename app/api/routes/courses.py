import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from app.core.utils import escape_like, normalize_course_code
from app.db.database import get_db
from app.models.course import Course
from app.models.resource import Resource, ResourceStatus, ResourceType
from app.models.user import User, UserRole
from app.schemas.course import CourseCreate, CourseResponse, CourseUpdate
from app.api.deps import require_role
from app.services.audit_service import client_ip, log_action
from app.services.resource_service import get_course_by_code

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/courses", tags=["Courses"])


def _course_stats(db: Session, course_ids: list[int]) -> dict[int, tuple[int, int, object]]:
    """Approved note/question counts and latest approved upload time per course."""
    if not course_ids:
        return {}
    rows = (
        db.query(
            Resource.course_id,
            func.sum(case((Resource.resource_type == ResourceType.NOTE.value, 1), else_=0)),
            func.sum(case((Resource.resource_type == ResourceType.QUESTION.value, 1), else_=0)),
            func.max(Resource.created_at),
        )
        .filter(
            Resource.course_id.in_(course_ids),
            Resource.status == ResourceStatus.APPROVED.value,
        )
        .group_by(Resource.course_id)
        .all()
    )
    return {r[0]: (int(r[1] or 0), int(r[2] or 0), r[3]) for r in rows}


def _to_response(course: Course, stats: dict) -> CourseResponse:
    notes, questions, last_updated = stats.get(course.id, (0, 0, None))
    resp = CourseResponse.model_validate(course)
    resp.note_count = notes
    resp.question_count = questions
    resp.last_updated = last_updated
    return resp


def _get_course_or_404(db: Session, code: str) -> Course:
    course = get_course_by_code(db, code)
    if not course:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    return course


@router.get("/", response_model=list[CourseResponse])
def list_courses(
    search: str | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """List courses by code with approved resource counts. Public."""
    query = db.query(Course)
    if search and search.strip():
        term = search.strip()
        search_term = f"%{escape_like(term)}%"
        code_term = f"%{escape_like(normalize_course_code(term))}%"
        query = query.filter(
            or_(
                Course.code.ilike(search_term, escape="\\"),
                Course.code.ilike(code_term, escape="\\"),
                Course.name.ilike(search_term, escape="\\"),
            )
        )
    courses = query.order_by(Course.code).offset(skip).limit(limit).all()
    stats = _course_stats(db, [c.id for c in courses])
    return [_to_response(c, stats) for c in courses]


@router.get("/{code}", response_model=CourseResponse)
def get_course(code: str, db: Session = Depends(get_db)):
    course = _get_course_or_404(db, code)
    return _to_response(course, _course_stats(db, [course.id]))


@router.post("/", response_model=CourseResponse, status_code=status.HTTP_201_CREATED)
def create_course(
    data: CourseCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    if db.query(Course).filter(Course.code == data.code).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Course code already exists")

    course = Course(code=data.code, name=data.name.strip(), description=data.description, level=data.level)
    db.add(course)
    db.flush()
    log_action(db, user_id=current_user.id, action="create", resource_type="course",
               resource_id=course.id, details={"code": course.code}, ip_address=client_ip(request))
    db.commit()
    db.refresh(course)
    logger.info(f"Course {course.code} created by user {current_user.id}")
    return _to_response(course, {})


@router.patch("/{code}", response_model=CourseResponse)
def update_course(
    code: str,
    data: CourseUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    course = _get_course_or_404(db, code)
    changes = data.model_dump(exclude_unset=True)
    if "name" in changes and not (changes["name"] or "").strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Course name cannot be blank")
    for field, value in changes.items():
        setattr(course, field, value.strip() if isinstance(value, str) else value)

    log_action(db, user_id=current_user.id, action="update", resource_type="course",
               resource_id=course.id, details=changes, ip_address=client_ip(request))
    db.commit()
    db.refresh(course)
    return _to_response(course, _course_stats(db, [course.id]))
