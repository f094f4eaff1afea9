import logging

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from fastapi.responses import StreamingResponse

from app.core.config import settings
from app.core.rate_limit import limiter
from app.models.user import User
from app.api.deps import get_current_user
from app.schemas.assistant import ChatRequest, ContextResponse
from app.services.ai_service import (
    SSE_DONE,
    AssistantUnavailableError,
    build_chat_messages,
    get_anthropic_client,
    sse_delta,
    sse_event,
    stream_chat,
    validate_conversation,
)
from app.services.file_processor import FileProcessingError, get_supported_formats, process_file

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assistant", tags=["Assistant"])


@router.post("/chat")
@limiter.limit("20/minute")
async def chat(
    request: Request,
    data: ChatRequest,
    current_user: User = Depends(get_current_user),
):
    """Stream the assistant's reply as server-sent events."""
    turns = [m.model_dump() for m in data.messages]
    error = validate_conversation(turns)
    if error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)

    try:
        get_anthropic_client()
    except AssistantUnavailableError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI assistant is not configured",
        )

    messages = build_chat_messages(turns, data.context)
    logger.info(f"Assistant chat | user={current_user.id} | turns={len(messages)} | context={bool(data.context)}")

    async def event_stream():
        try:
            async for text in stream_chat(messages):
                yield sse_delta(text)
        except Exception as e:
            logger.error(f"Assistant stream aborted | user={current_user.id} | error={e}")
            yield sse_event({"error": "The assistant could not finish its reply. Please try again."})
        yield SSE_DONE

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/context", response_model=ContextResponse)
async def upload_context(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
):
    """Extract the text of a study file so it can be sent along with chat messages."""
    content = await file.read()
    filename = file.filename or ""
    try:
        text = process_file(content, filename)
    except FileProcessingError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    text = text.strip()
    if not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No text could be extracted from the file")

    limit = settings.assistant_context_chars
    return ContextResponse(
        file_name=filename,
        text=text[:limit],
        total_chars=len(text),
        truncated=len(text) > limit,
    )


@router.get("/formats")
def supported_formats():
    return get_supported_formats()
