import enum

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Text, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.database import Base


class ResourceType(str, enum.Enum):
    NOTE = "note"
    QUESTION = "question"


class ResourceStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Semester(str, enum.Enum):
    FIRST = "first"
    SECOND = "second"


class Resource(Base):
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)

    title = Column(String(255), nullable=False)
    # Enum-like columns stored as strings for cross-DB compatibility (SQLite/PostgreSQL)
    resource_type = Column(String(20), nullable=False, default=ResourceType.NOTE.value)
    year = Column(String(4), nullable=True)
    semester = Column(String(10), nullable=True)
    level = Column(String(10), nullable=True)
    exam_type = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    tags = Column(String(500), nullable=True)  # comma-separated

    # Object storage
    file_path = Column(String(1024), unique=True, nullable=False)
    file_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=True)
    content_type = Column(String(255), nullable=True)

    status = Column(String(20), nullable=False, default=ResourceStatus.PENDING.value)
    verified = Column(Boolean, default=False, nullable=False)
    downloads = Column(Integer, default=0, nullable=False)

    uploaded_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    course = relationship("Course", back_populates="resources")
    uploaded_by = relationship("User", foreign_keys=[uploaded_by_user_id])
    reviewed_by = relationship("User", foreign_keys=[reviewed_by_user_id])

    @property
    def course_code(self) -> str | None:
        return self.course.code if self.course else None

    @property
    def course_name(self) -> str | None:
        return self.course.name if self.course else None

    @property
    def uploader_name(self) -> str | None:
        return self.uploaded_by.full_name if self.uploaded_by else None

    __table_args__ = (
        Index("ix_resources_course_status", "course_id", "status"),
        Index("ix_resources_status_created", "status", "created_at"),
        Index("ix_resources_uploader", "uploaded_by_user_id"),
    )
