from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from app.schemas.resource import ResourceMetadata


class AdminStats(BaseModel):
    total_users: int
    total_courses: int
    resources_by_status: dict[str, int]
    verified_resources: int
    total_downloads: int
    pending_requests: int


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class OrphanFile(BaseModel):
    file_path: str
    file_name: str
    size: int
    last_modified: Optional[datetime] = None
    file_url: str
    inferred_course_code: Optional[str] = None
    inferred_title: str
    inferred_resource_type: str
    inferred_year: Optional[str] = None
    contributor_id: Optional[int] = None
    contributor_name: Optional[str] = None


class OrphanList(BaseModel):
    items: list[OrphanFile]
    total: int


class OrphanPublish(ResourceMetadata):
    file_path: str
    contributor_id: Optional[int] = None  # defaults to the contributor inferred from the key
    verified: bool = False

    @field_validator("file_path")
    @classmethod
    def validate_file_path(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("file_path is required")
        return v
