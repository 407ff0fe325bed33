import enum
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Enum, Text, Integer
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from status_tracker.db import Base


def _new_id(prefix: str = "") -> str:
    return f"{prefix}{uuid.uuid4().hex}"


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    PROJECT_MANAGER = "PROJECT_MANAGER"
    CONTRACTOR = "CONTRACTOR"


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(Role), nullable=False, default=Role.CONTRACTOR)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    projects = relationship("Project", back_populates="owner")


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(64), primary_key=True, default=lambda: _new_id("proj_"))
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(500), nullable=False)
    description = Column(Text, nullable=False)
    tracking_focus_areas = Column(Text, nullable=False)
    schedule_file_name = Column(String(500), nullable=True)
    schedule_file_url = Column(Text, nullable=True)
    contractor_link = Column(Text, nullable=False)
    updates_count = Column(Integer, default=0, nullable=False)
    last_update = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    owner = relationship("User", back_populates="projects")
    analysis = relationship("ProjectAnalysis", back_populates="project", uselist=False)
    status_updates = relationship("StatusUpdate", back_populates="project")


class ProjectAnalysis(Base):
    """One-time schedule summary used as chat context"""
    __tablename__ = "project_analysis"

    id = Column(String(80), primary_key=True)
    project_id = Column(String(64), ForeignKey("projects.id"), nullable=False, unique=True)
    schedule_analysis = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    project = relationship("Project", back_populates="analysis")


class StatusUpdate(Base):
    """One contractor chat turn: what was said and what the agent answered"""
    __tablename__ = "status_updates"

    id = Column(String(64), primary_key=True, default=lambda: _new_id("update_"))
    project_id = Column(String(64), ForeignKey("projects.id"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    user_message = Column(Text, nullable=False)
    ai_response = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    project = relationship("Project", back_populates="status_updates")
