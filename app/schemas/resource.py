import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from app.core.utils import normalize_course_code, parse_tags
from app.models.resource import ResourceType, Semester
from app.schemas.course import _validate_level

VALID_RESOURCE_TYPES = {t.value for t in ResourceType}
VALID_SEMESTERS = {s.value for s in Semester}
_YEAR_PATTERN = re.compile(r"^(19|20)\d{2}$")


def normalize_semester(v: Optional[str]) -> Optional[str]:
    """Accept "first", "First Semester", "1st" ... and return first/second."""
    if v is None or not v.strip():
        return None
    word = v.strip().lower().split()[0]
    aliases = {"1": "first", "1st": "first", "2": "second", "2nd": "second"}
    word = aliases.get(word, word)
    if word not in VALID_SEMESTERS:
        raise ValueError(f"Invalid semester. Must be one of: {', '.join(sorted(VALID_SEMESTERS))}")
    return word


def normalize_resource_type(v: str) -> str:
    normalized = v.strip().lower()
    # The upload form labels are "Lecture Notes" / "Past Questions"
    normalized = {"notes": "note", "lecture notes": "note", "questions": "question",
                  "past questions": "question"}.get(normalized, normalized)
    if normalized not in VALID_RESOURCE_TYPES:
        raise ValueError(f"Invalid resource_type. Must be one of: {', '.join(sorted(VALID_RESOURCE_TYPES))}")
    return normalized


class ResourceMetadata(BaseModel):
    """Descriptive fields shared by uploads and published orphans."""

    course_code: str
    title: str
    resource_type: str
    year: Optional[str] = None
    semester: Optional[str] = None
    level: Optional[str] = None
    exam_type: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = []

    @field_validator("course_code")
    @classmethod
    def validate_course_code(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Course code is required")
        return normalize_course_code(v)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        if len(v) > 255:
            raise ValueError("Title must be at most 255 characters")
        return v

    @field_validator("resource_type")
    @classmethod
    def validate_resource_type(cls, v: str) -> str:
        return normalize_resource_type(v)

    @field_validator("year")
    @classmethod
    def validate_year(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not _YEAR_PATTERN.match(v):
            raise ValueError("Year must be a four-digit year")
        return v

    @field_validator("semester")
    @classmethod
    def validate_semester(cls, v: Optional[str]) -> Optional[str]:
        return normalize_semester(v)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: Optional[str]) -> Optional[str]:
        return _validate_level(v)

    @field_validator("exam_type", "description")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v: object) -> list[str]:
        if v is None or isinstance(v, (str, list)):
            return parse_tags(v)
        raise ValueError("tags must be a list or a comma-separated string")


class ResourceResponse(BaseModel):
    id: int
    title: str
    course_id: int
    course_code: Optional[str] = None
    course_name: Optional[str] = None
    resource_type: str
    year: Optional[str] = None
    semester: Optional[str] = None
    level: Optional[str] = None
    exam_type: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = []
    file_name: str
    file_size: Optional[int] = None
    content_type: Optional[str] = None
    file_url: Optional[str] = None
    status: str
    verified: bool
    downloads: int
    uploaded_by_user_id: Optional[int] = None
    uploader_name: Optional[str] = None
    is_bookmarked: bool = False
    created_at: datetime
    updated_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None

    @field_validator("tags", mode="before")
    @classmethod
    def parse_tag_column(cls, v: object) -> list[str]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v:
            return parse_tags(v)
        return []

    class Config:
        from_attributes = True


class ResourceList(BaseModel):
    items: list[ResourceResponse]
    total: int
