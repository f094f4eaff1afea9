import traceback
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.core.config import settings
from app.core.logging_config import setup_logging, get_logger
from app.core.middleware import RequestTimingMiddleware, SecurityHeadersMiddleware
from app.core.rate_limit import limiter
from app.db.database import Base, engine
from app.api.routes import admin, assistant, auth, bookmarks, courses, logs, notifications, orphans, requests, resources, users

# Initialize logging first (auto-determines level based on environment)
setup_logging(
    app_name="studyvault",
    log_level=settings.log_level,  # Empty = auto (DEBUG in dev, WARNING in prod)
    environment=settings.environment,
    enable_console=True,
    enable_file=settings.log_to_file,
)

logger = get_logger(__name__)

logger.info("Starting StudyVault API...")

# Create database tables
from app.models import AuditLog, Bookmark, Course, Notification, Resource, ResourceRequest, TokenBlacklist, User  # noqa: F401
Base.metadata.create_all(bind=engine)
logger.info("Database tables created/verified")


app = FastAPI(
    title=settings.app_name,
    description="Course notes and past questions, shared and moderated",
    version="0.1.0",
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# Global exception handler: logs full tracebacks for 500 errors
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions, log full traceback, return 500."""
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc}\n"
        f"{traceback.format_exc()}"
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# CORS: explicit origins only, credentials are allowed
if settings.allowed_origins:
    cors_origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
elif settings.environment == "production":
    cors_origins = [settings.frontend_url]
else:
    cors_origins = ["http://localhost:5173", "http://localhost:3000", settings.frontend_url]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestTimingMiddleware)

# Include all API routers at /api prefix
for module in (auth, users, courses, resources, bookmarks, requests, admin, orphans, assistant, notifications, logs):
    app.include_router(module.router, prefix="/api")

logger.info("API routes registered at /api")

# Local storage backend: serve stored objects at the URLs public_url() hands out
if settings.storage_backend.lower() == "local":
    storage_dir = Path(settings.storage_dir)
    storage_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/files", StaticFiles(directory=storage_dir), name="files")


@app.get("/health")
def health_check():
    logger.debug("Health check requested")
    return {"status": "healthy"}


@app.get("/")
def root():
    return {"message": "StudyVault API", "app": settings.app_name, "docs": "/docs"}


@app.on_event("startup")
async def startup_event():
    from app.services.scheduler import schedule_maintenance_jobs, start_scheduler

    schedule_maintenance_jobs()
    start_scheduler()
    logger.info("StudyVault API started successfully")


@app.on_event("shutdown")
async def shutdown_event():
    from app.services.scheduler import stop_scheduler
    stop_scheduler()
    logger.info("StudyVault API shutting down")
