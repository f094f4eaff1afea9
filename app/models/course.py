from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.database import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(30), unique=True, index=True, nullable=False)  # normalized, e.g. "CS 201"
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    level = Column(String(10), nullable=True)  # "100".."400"

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    resources = relationship("Resource", back_populates="course", passive_deletes=True)
