from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Optional

from app.core.utils import normalize_course_code

VALID_LEVELS = {"100", "200", "300", "400", "500"}


def _validate_level(v: Optional[str]) -> Optional[str]:
    if v is None or not v.strip():
        return None
    normalized = v.strip().split()[0]  # "300 Level" -> "300"
    if normalized not in VALID_LEVELS:
        raise ValueError(f"Invalid level. Must be one of: {', '.join(sorted(VALID_LEVELS))}")
    return normalized


class CourseCreate(BaseModel):
    code: str
    name: str
    description: Optional[str] = None
    level: Optional[str] = None

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Course code is required")
        return normalize_course_code(v)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: Optional[str]) -> Optional[str]:
        return _validate_level(v)


class CourseUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    level: Optional[str] = None

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: Optional[str]) -> Optional[str]:
        return _validate_level(v)


class CourseResponse(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    level: Optional[str] = None
    note_count: int = 0
    question_count: int = 0
    last_updated: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
