from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator
from typing import Optional, List
from datetime import datetime
from status_tracker.models import Role
from status_tracker.services.chat_session import MessageRole, SessionState


# ============= User Schemas =============
class UserCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255, description="User's full name")
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72, description="Password (min 8 characters)")
    role: Role = Role.CONTRACTOR

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Name cannot be empty or whitespace')
        return v.strip()

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: Role) -> Role:
        if v == Role.ADMIN:
            raise ValueError('Admin accounts cannot be self-registered')
        return v


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: EmailStr
    role: Role
    is_active: bool
    created_at: datetime


# ============= Auth Schemas =============
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class MessageResponse(BaseModel):
    message: str


# ============= Project Schemas =============
class ProjectCreate(BaseModel):
    name: str = Field(..., max_length=500)
    description: str
    tracking_focus_areas: str

    @field_validator("name", "description", "tracking_focus_areas")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


class ProjectResponse(BaseModel):
    id: str
    user_id: str
    name: str
    description: str
    tracking_focus_areas: str
    schedule_file_name: Optional[str] = None
    schedule_file_url: Optional[str] = None
    contractor_link: str
    updates_count: int = 0
    last_update: Optional[datetime] = None
    created_at: datetime


class StatusUpdateResponse(BaseModel):
    id: str
    project_id: str
    user_id: str
    user_message: str
    ai_response: str
    created_at: datetime


class ProjectDetailResponse(BaseModel):
    project: ProjectResponse
    has_schedule_analysis: bool = False
    schedule_analysis: Optional[str] = None
    status_updates: List[StatusUpdateResponse] = []


class DashboardStats(BaseModel):
    total_projects: int
    active_projects: int
    total_updates: int
    projects_with_schedule: int


# ============= Chat Schemas =============
class ChatMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    role: MessageRole
    content: str
    timestamp: datetime


class ChatSessionResponse(BaseModel):
    session_id: str
    project_id: str
    project_name: Optional[str] = None
    state: SessionState
    in_flight: bool = False
    messages: List[ChatMessageResponse] = []


class SubmitMessageRequest(BaseModel):
    text: str = Field(..., max_length=4000)


class SubmitMessageResponse(BaseModel):
    accepted: bool
    state: SessionState
    messages: List[ChatMessageResponse] = []
