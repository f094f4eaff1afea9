from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Optional

from app.core.utils import normalize_course_code
from app.models.resource_request import RequestStatus

RESPONSE_STATUSES = {RequestStatus.FULFILLED.value, RequestStatus.REJECTED.value}


class ResourceRequestCreate(BaseModel):
    question: str
    course_code: Optional[str] = None

    @field_validator("question")
    @classmethod
    def validate_question(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Please describe the resource you need")
        return v

    @field_validator("course_code")
    @classmethod
    def validate_course_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return normalize_course_code(v)


class ResourceRequestResponse(BaseModel):
    id: int
    user_id: int
    question: str
    course_code: Optional[str] = None
    status: str
    admin_response: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AdminResourceRequestResponse(ResourceRequestResponse):
    requester_name: Optional[str] = None
    requester_email: Optional[str] = None


class AdminResourceRequestList(BaseModel):
    items: list[AdminResourceRequestResponse]
    total: int
    pending_count: int
    responded_count: int


class RequestRespond(BaseModel):
    status: str = RequestStatus.FULFILLED.value
    admin_response: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        normalized = v.strip().lower()
        if normalized not in RESPONSE_STATUSES:
            raise ValueError(f"Invalid status. Must be one of: {', '.join(sorted(RESPONSE_STATUSES))}")
        return normalized
