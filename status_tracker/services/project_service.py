"""
Project creation and the read-side flows behind the dashboards.
"""
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from status_tracker.config import settings
from status_tracker.exceptions import ExternalServiceError, NotFoundError, ValidationError
from status_tracker.schemas import DashboardStats, ProjectCreate
from status_tracker.services.prompts import build_schedule_analysis_prompt
from status_tracker.services.record_store import (
    PROJECT_ANALYSIS,
    PROJECTS,
    STATUS_UPDATES,
    RecordStore,
    RecordStoreError,
)
from status_tracker.services.storage import SCHEDULES_PREFIX, StorageBackend, StorageError
from status_tracker.services.text_generation import TextGenerator
from status_tracker.utils.file_validation import ScheduleFile, sanitize_filename

logger = logging.getLogger(__name__)


def new_project_id() -> str:
    return f"proj_{uuid.uuid4().hex}"


def build_contractor_link(project_id: str, base_url: Optional[str] = None) -> str:
    base = (base_url or settings.FRONTEND_URL).rstrip("/")
    return f"{base}/chat/{project_id}"


def schedule_storage_path(filename: str) -> str:
    return f"{SCHEDULES_PREFIX}{int(time.time() * 1000)}-{sanitize_filename(filename)}"


def _require_text(data: ProjectCreate) -> None:
    missing_fields = [
        name for name in ("name", "description", "tracking_focus_areas")
        if not getattr(data, name)
    ]
    if missing_fields:
        raise ValidationError(
            f"Missing mandatory fields: {', '.join(missing_fields)}",
            details={"missing_fields": missing_fields},
        )


async def create_project(
    store: RecordStore,
    storage: StorageBackend,
    generator: TextGenerator,
    data: ProjectCreate,
    user,
    schedule_file: Optional[ScheduleFile] = None,
) -> Dict[str, Any]:
    """
    Upload the schedule (if any), create the project, then best-effort
    seed its schedule analysis.

    There is no transaction across the three steps: an upload followed by a
    failed project insert leaves the stored file behind.
    """
    _require_text(data)

    schedule_file_name = None
    schedule_file_url = None
    if schedule_file is not None:
        path = schedule_storage_path(schedule_file.filename)
        try:
            stored = storage.upload(schedule_file.data, path, overwrite=True, content_type=schedule_file.content_type)
        except StorageError as e:
            logger.error(f"Schedule upload failed: {e}", extra={"user_id": str(user.id)})
            raise ExternalServiceError("Schedule upload failed", service_name="storage")
        schedule_file_name = schedule_file.filename
        schedule_file_url = stored.url
        logger.info(f"Schedule uploaded to {stored.storage_key} ({stored.size_bytes} bytes)")

    project_id = new_project_id()
    record = {
        "id": project_id,
        "user_id": str(user.id),
        "name": data.name,
        "description": data.description,
        "tracking_focus_areas": data.tracking_focus_areas,
        "schedule_file_name": schedule_file_name,
        "schedule_file_url": schedule_file_url,
        "contractor_link": build_contractor_link(project_id),
        "updates_count": 0,
        "last_update": None,
        "created_at": datetime.utcnow(),
    }
    try:
        project = store.create(PROJECTS, record)
    except RecordStoreError as e:
        if schedule_file_url:
            logger.error(f"Project creation failed, uploaded schedule is orphaned: {schedule_file_url}")
        raise ExternalServiceError(f"Project creation failed: {e}", service_name="record_store")

    logger.info("Project created", extra={"project_id": project_id, "user_id": str(user.id)})

    if schedule_file_url:
        await seed_schedule_analysis(store, generator, project)

    return project


async def seed_schedule_analysis(store: RecordStore, generator: TextGenerator, project: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Ask for a one-time schedule summary and store it. Failures are logged and swallowed."""
    prompt = build_schedule_analysis_prompt(
        project["name"],
        project["description"],
        project["tracking_focus_areas"],
    )
    try:
        analysis_text = await generator.generate(prompt, model=settings.AI_MODEL, max_tokens=settings.AI_MAX_TOKENS)
    except Exception as e:
        logger.error(f"Error analyzing schedule: {e}", extra={"project_id": project["id"]})
        return None

    try:
        return store.create(PROJECT_ANALYSIS, {
            "id": f"analysis_{project['id']}",
            "project_id": project["id"],
            "schedule_analysis": analysis_text,
            "created_at": datetime.utcnow(),
        })
    except RecordStoreError as e:
        logger.error(f"Error saving schedule analysis: {e}", extra={"project_id": project["id"]})
        return None


def _matches(project: Dict[str, Any], term: str) -> bool:
    return term in (project.get("name") or "").lower() or term in (project.get("description") or "").lower()


def filter_projects(projects: List[Dict[str, Any]], search: Optional[str]) -> List[Dict[str, Any]]:
    term = (search or "").strip().lower()
    if not term:
        return list(projects)
    return [project for project in projects if _matches(project, term)]


def list_projects(store: RecordStore, owner_id: Optional[str] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
    """All projects newest first, optionally only one owner's, filtered by name/description substring."""
    filter = {"user_id": owner_id} if owner_id else None
    try:
        projects = store.list(PROJECTS, filter=filter, order_by="-created_at")
    except RecordStoreError as e:
        logger.error(f"Error loading projects: {e}")
        raise ExternalServiceError("Could not load projects", service_name="record_store")
    return filter_projects(projects, search)


def dashboard_stats(projects: List[Dict[str, Any]]) -> DashboardStats:
    return DashboardStats(
        total_projects=len(projects),
        active_projects=len(projects),
        total_updates=sum(project.get("updates_count") or 0 for project in projects),
        projects_with_schedule=sum(1 for project in projects if project.get("schedule_file_url")),
    )


def get_project_details(store: RecordStore, project_id: str) -> Dict[str, Any]:
    try:
        project = store.get(PROJECTS, project_id)
    except RecordStoreError as e:
        logger.error(f"Error loading project: {e}", extra={"project_id": project_id})
        raise ExternalServiceError("Could not load project", service_name="record_store")
    if project is None:
        raise NotFoundError("Project", project_id)

    try:
        analyses = store.list(PROJECT_ANALYSIS, filter={"project_id": project_id}, limit=1)
        updates = store.list(STATUS_UPDATES, filter={"project_id": project_id}, order_by="-created_at")
    except RecordStoreError as e:
        logger.error(f"Error loading project history: {e}", extra={"project_id": project_id})
        analyses, updates = [], []

    analysis = analyses[0] if analyses else None
    return {
        "project": project,
        "has_schedule_analysis": analysis is not None,
        "schedule_analysis": analysis["schedule_analysis"] if analysis else None,
        "status_updates": updates,
    }
