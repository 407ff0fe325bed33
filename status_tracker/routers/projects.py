from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from pydantic import ValidationError as PydanticValidationError
from typing import List, Optional
import logging

from status_tracker.config import settings
from status_tracker.deps import get_current_active_user, get_services, require_roles
from status_tracker.exceptions import ValidationError
from status_tracker.models import Role, User
from status_tracker.rate_limit import limiter, UPLOAD_RATE_LIMIT
from status_tracker.schemas import (
    DashboardStats,
    ProjectCreate,
    ProjectDetailResponse,
    ProjectResponse,
)
from status_tracker.services import project_service
from status_tracker.services.container import Services
from status_tracker.utils.file_validation import SCHEDULE_EXTENSIONS, ScheduleFile, select_schedule_file

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/projects", tags=["projects"])


async def _read_schedule_file(upload: Optional[UploadFile]) -> Optional[ScheduleFile]:
    """Apply the selection rules before anything is uploaded"""
    if upload is None or not upload.filename:
        return None
    # Extension first: a rejected file is never read or stored
    if select_schedule_file(upload.filename, b"") is None:
        raise ValidationError(
            f"Unsupported schedule file type. Allowed types: {', '.join(sorted(SCHEDULE_EXTENSIONS))}",
            details={"filename": upload.filename},
        )
    data = await upload.read()
    if not data:
        raise ValidationError("Schedule file is empty", details={"filename": upload.filename})
    if len(data) > settings.MAX_UPLOAD_SIZE:
        size_mb = settings.MAX_UPLOAD_SIZE / (1024 * 1024)
        raise ValidationError(f"File too large. Maximum size: {size_mb:.1f}MB", details={"filename": upload.filename})
    return select_schedule_file(upload.filename, data, upload.content_type)


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(UPLOAD_RATE_LIMIT)
async def create_project(
    request: Request,
    name: str = Form(""),
    description: str = Form(""),
    tracking_focus_areas: str = Form(""),
    schedule_file: Optional[UploadFile] = File(None),
    current_user: User = Depends(require_roles(Role.PROJECT_MANAGER, Role.ADMIN)),
    services: Services = Depends(get_services),
):
    """Create a project (Project Managers only); the schedule file is optional"""
    try:
        data = ProjectCreate(name=name, description=description, tracking_focus_areas=tracking_focus_areas)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid project data",
            details={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
        )

    schedule = await _read_schedule_file(schedule_file)
    return await project_service.create_project(
        services.store,
        services.storage,
        services.generator,
        data,
        current_user,
        schedule_file=schedule,
    )


@router.get("", response_model=List[ProjectResponse])
def list_my_projects(
    search: Optional[str] = Query(None, description="Substring match on name or description"),
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    """Project manager dashboard: the current user's projects, newest first"""
    return project_service.list_projects(services.store, owner_id=str(current_user.id), search=search)


@router.get("/all", response_model=List[ProjectResponse])
def list_all_projects(
    search: Optional[str] = Query(None, description="Substring match on name or description"),
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    """Contractor view: every project open for status updates"""
    return project_service.list_projects(services.store, search=search)


@router.get("/dashboard", response_model=DashboardStats)
def get_dashboard_stats(
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    projects = project_service.list_projects(services.store, owner_id=str(current_user.id))
    return project_service.dashboard_stats(projects)


@router.get("/{project_id}", response_model=ProjectDetailResponse)
def get_project(
    project_id: str,
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    return project_service.get_project_details(services.store, project_id)
