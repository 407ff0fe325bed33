import logging
import os

from alembic import command
from alembic.config import Config
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from status_tracker.config import settings
from status_tracker.db import SessionLocal, get_db
from status_tracker.exceptions import (
    AppException,
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
)
from status_tracker.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware
from status_tracker.rate_limit import limiter, rate_limit_exceeded_handler
from status_tracker.routers import auth, chat, projects
from status_tracker.services.container import build_services
from status_tracker.utils.logging import configure_logging

configure_logging(logging.INFO)
logger = logging.getLogger(__name__)

APP_NAME = "Project Status Tracker"
APP_VERSION = "1.0.0"
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def run_migrations() -> None:
    """Upgrade the database to the latest alembic revision. Failures are logged, not raised."""
    config = Config(os.path.join(PROJECT_ROOT, "alembic.ini"))
    config.set_main_option("script_location", os.path.join(PROJECT_ROOT, "alembic"))
    config.set_main_option("sqlalchemy.url", settings.database_url_fixed)
    # alembic.ini's [loggers] would replace the JSON handler
    config.attributes["configure_logger"] = False
    try:
        command.upgrade(config, "head")
    except Exception as e:
        logger.error(f"Database migration failed: {e}", exc_info=True)
        return
    logger.info("Database schema is at head")


def _allowed_origins() -> list:
    origins = settings.cors_origins_list
    if settings.FRONTEND_URL and settings.FRONTEND_URL not in origins:
        origins.append(settings.FRONTEND_URL)
    return origins


app = FastAPI(
    title=APP_NAME,
    description="Schedule-aware status updates from contractors, collected by an AI project controls agent",
    version=APP_VERSION,
)
app.state.limiter = limiter

for exc_class, handler in (
    (AppException, app_exception_handler),
    (StarletteHTTPException, http_exception_handler),
    (RateLimitExceeded, rate_limit_exceeded_handler),
    (Exception, general_exception_handler),
):
    app.add_exception_handler(exc_class, handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
    max_age=3600,
)
app.add_middleware(RequestIDMiddleware)

for router_module in (auth, projects, chat):
    app.include_router(router_module.router)

# Local storage backend files; S3 URLs point at the bucket instead
os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {APP_NAME} ({settings.ENVIRONMENT})")
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        run_migrations()
    app.state.services = build_services(settings, SessionLocal)


@app.on_event("shutdown")
async def shutdown_event():
    services = getattr(app.state, "services", None)
    app.state.services = None
    if services is not None:
        services.close()
    logger.info(f"{APP_NAME} stopped")


@app.get("/")
def read_root():
    return {"message": f"{APP_NAME} API", "version": APP_VERSION, "status": "running"}


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/readyz")
def readyz(db: Session = Depends(get_db)):
    """Ready once the database answers and the services container is built."""
    checks = {"database": _database_ready(db), "services": getattr(app.state, "services", None) is not None}
    if not all(checks.values()):
        raise HTTPException(status_code=503, detail={"status": "not_ready", "checks": checks})
    return {"status": "ok", "checks": checks}


def _database_ready(db: Session) -> bool:
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database readiness check failed: {e}")
        return False
    return True
