# backend/aeroconflict/models/project.py
import enum

from sqlalchemy import Integer, String, Column, DateTime, Text, func
from .base import Base


class ProjectStatus(str, enum.Enum):
    CREATED = "Created"
    PENDING = "Pending"
    UNDER_REVIEW = "Under_Review"
    ACCEPTED = "Accepted"
    REFUSED = "Refused"
    CANCELLED = "Cancelled"


class Project(Base):
    __tablename__ = "projects"
    id = Column(Integer, primary_key=True)
    project_code = Column(String, nullable=False, unique=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    operation_type = Column(String, nullable=True)
    altitude_min = Column(Integer, nullable=True)  # m
    altitude_max = Column(Integer, nullable=True)  # m
    # ProjectStatus の値を文字列で保持
    status = Column(String, nullable=False, default=ProjectStatus.CREATED.value)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
