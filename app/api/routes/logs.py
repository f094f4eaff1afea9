"""
Frontend log ingestion.
Browser clients post their log lines here so they land in the server log files.
"""

from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from app.core.logging_config import get_logger, FrontendLogHandler

router = APIRouter(prefix="/logs", tags=["Logging"])

logger = get_logger("studyvault.frontend")
frontend_handler = FrontendLogHandler(logger)

_MAX_USER_AGENT = 100


class LogEntry(BaseModel):
    level: str  # debug, info, warn, error
    message: str
    timestamp: Optional[str] = None
    context: Optional[dict] = None


class LogBatch(BaseModel):
    entries: list[LogEntry] = Field(..., max_length=100)


def _request_context(request: Request) -> dict:
    context = {}
    if request.client:
        context["client_ip"] = request.client.host
    user_agent = request.headers.get("user-agent")
    if user_agent:
        context["user_agent"] = user_agent[:_MAX_USER_AGENT]
    return context


def _write(entry: LogEntry, request_context: dict) -> None:
    context = dict(entry.context or {})
    context.update(request_context)
    if entry.timestamp:
        context["client_timestamp"] = entry.timestamp
    frontend_handler.log(level=entry.level, message=entry.message, context=context)


@router.post("/")
async def receive_log(entry: LogEntry, request: Request):
    _write(entry, _request_context(request))
    return {"status": "logged"}


@router.post("/batch")
async def receive_log_batch(batch: LogBatch, request: Request):
    """Receive several log entries in one request."""
    request_context = _request_context(request)
    for entry in batch.entries:
        _write(entry, request_context)
    return {"status": "logged", "count": len(batch.entries)}
