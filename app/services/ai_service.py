"""
AI study assistant backed by Anthropic Claude.
"""
import json
import time
from typing import AsyncIterator

import anthropic

from app.core.config import settings
from app.core.logging_config import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = """You are a patient study assistant for university students.
Help them understand lecture notes and solve past exam questions step by step.
When the student shares material from a file, ground your answer in it and say
so when the material does not cover the question. Use clear Markdown."""


class AssistantUnavailableError(Exception):
    """Raised when the assistant cannot be used (e.g. no API key configured)."""
    pass


def get_anthropic_client() -> anthropic.AsyncAnthropic:
    """Get configured async Anthropic client."""
    if not settings.anthropic_api_key:
        logger.error("Anthropic API key not configured")
        raise AssistantUnavailableError("ANTHROPIC_API_KEY not configured")
    return anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)


def validate_conversation(messages: list[dict]) -> str | None:
    """Return an error message if the conversation cannot be sent, or None if OK."""
    if not messages:
        return "At least one message is required"
    if messages[-1]["role"] != "user":
        return "The last message must come from the user"
    if not messages[-1]["content"].strip():
        return "The last message cannot be empty"
    return None


def build_chat_messages(messages: list[dict], context: str | None = None) -> list[dict]:
    """
    Prepare the conversation for the model.

    The uploaded-file context (cut to ``assistant_context_chars``) is folded
    into the final user turn only, so earlier turns stay as the user typed them.
    """
    prepared = [{"role": m["role"], "content": m["content"]} for m in messages]
    if context and context.strip() and prepared:
        question = prepared[-1]["content"]
        excerpt = context[: settings.assistant_context_chars]
        prepared[-1]["content"] = f"Context from uploaded file:\n{excerpt}\n\nUser question: {question}"
    return prepared


async def stream_chat(messages: list[dict], max_tokens: int | None = None) -> AsyncIterator[str]:
    """
    Stream the assistant reply as text chunks.

    Args:
        messages: Prepared conversation (see build_chat_messages)
        max_tokens: Reply cap; defaults to settings.assistant_max_tokens

    Yields:
        Text deltas in arrival order
    """
    client = get_anthropic_client()
    start_time = time.time()
    max_tokens = max_tokens or settings.assistant_max_tokens
    logger.info(f"Starting assistant stream | model={settings.claude_model} | turns={len(messages)}")

    output_chars = 0
    try:
        async with client.messages.stream(
            model=settings.claude_model,
            max_tokens=max_tokens,
            system=SYSTEM_PROMPT,
            messages=messages,
        ) as stream:
            async for text in stream.text_stream:
                output_chars += len(text)
                yield text
            final = await stream.get_final_message()
    except Exception as e:
        duration_ms = (time.time() - start_time) * 1000
        logger.error(f"Assistant stream failed | duration={duration_ms:.2f}ms | error={str(e)}")
        raise

    duration_ms = (time.time() - start_time) * 1000
    logger.info(
        f"Assistant stream completed | duration={duration_ms:.2f}ms | chars={output_chars} | "
        f"input_tokens={final.usage.input_tokens} | output_tokens={final.usage.output_tokens}"
    )


def sse_event(payload: dict | str) -> str:
    """Format one server-sent event line; dicts are JSON encoded."""
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {data}\n\n"


def sse_delta(text: str) -> str:
    """Event carrying a chunk of assistant text in the chat-completion delta shape."""
    return sse_event({"choices": [{"delta": {"content": text}}]})


SSE_DONE = sse_event("[DONE]")
