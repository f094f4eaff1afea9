from typing import Literal, Optional

from pydantic import BaseModel


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: list[ChatMessage]
    context: Optional[str] = None  # text extracted from an uploaded study file


class ContextResponse(BaseModel):
    file_name: str
    text: str
    total_chars: int
    truncated: bool
