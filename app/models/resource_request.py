import enum

from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.database import Base


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


class ResourceRequest(Base):
    __tablename__ = "resource_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    question = Column(Text, nullable=False)
    course_code = Column(String(30), nullable=True)
    status = Column(String(20), nullable=False, default=RequestStatus.PENDING.value)
    admin_response = Column(Text, nullable=True)
    responded_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", foreign_keys=[user_id])

    @property
    def requester_name(self) -> str | None:
        return self.user.full_name if self.user else None

    @property
    def requester_email(self) -> str | None:
        return self.user.email if self.user else None

    __table_args__ = (
        Index("ix_resource_requests_user_created", "user_id", "created_at"),
        Index("ix_resource_requests_status", "status"),
    )
