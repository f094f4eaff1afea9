import json

import pytest


@pytest.fixture()
def assistant_routes(app):
    from app.api.routes import assistant
    return assistant


@pytest.fixture()
def fake_model(assistant_routes, monkeypatch):
    """Replace the Anthropic stream with canned chunks and record what was sent."""
    sent = {}

    async def fake_stream(messages, max_tokens=None):
        sent["messages"] = messages
        for chunk in ["Derivatives ", "measure ", "change."]:
            yield chunk

    monkeypatch.setattr(assistant_routes, "get_anthropic_client", lambda: object())
    monkeypatch.setattr(assistant_routes, "stream_chat", fake_stream)
    return sent


def _events(body: str) -> list[str]:
    return [line[len("data: "):] for line in body.split("\n\n") if line.startswith("data: ")]


class TestChat:
    def test_requires_login(self, client):
        resp = client.post("/api/assistant/chat", json={"messages": [{"role": "user", "content": "hi"}]})
        assert resp.status_code == 401

    def test_streams_deltas_then_done(self, client, student, auth_headers, fake_model):
        resp = client.post(
            "/api/assistant/chat",
            json={"messages": [{"role": "user", "content": "What is a derivative?"}]},
            headers=auth_headers(student.email),
        )
        assert resp.status_code == 200, resp.text
        assert resp.headers["content-type"].startswith("text/event-stream")

        events = _events(resp.text)
        assert events[-1] == "[DONE]"
        text = "".join(json.loads(e)["choices"][0]["delta"]["content"] for e in events[:-1])
        assert text == "Derivatives measure change."

    def test_context_folded_into_last_turn(self, client, student, auth_headers, fake_model):
        client.post(
            "/api/assistant/chat",
            json={
                "messages": [
                    {"role": "user", "content": "Summarise the notes"},
                    {"role": "assistant", "content": "Which part?"},
                    {"role": "user", "content": "Chapter 2"},
                ],
                "context": "Chapter 2 covers limits.",
            },
            headers=auth_headers(student.email),
        )
        messages = fake_model["messages"]
        assert messages[0]["content"] == "Summarise the notes"
        assert messages[-1]["content"] == (
            "Context from uploaded file:\nChapter 2 covers limits.\n\nUser question: Chapter 2"
        )

    @pytest.mark.parametrize("messages", [
        [],
        [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}],
        [{"role": "user", "content": "   "}],
    ])
    def test_invalid_conversation_rejected(self, client, student, auth_headers, fake_model, messages):
        resp = client.post(
            "/api/assistant/chat", json={"messages": messages}, headers=auth_headers(student.email),
        )
        assert resp.status_code == 400

    def test_unconfigured_returns_503(self, client, student, auth_headers):
        resp = client.post(
            "/api/assistant/chat",
            json={"messages": [{"role": "user", "content": "hi"}]},
            headers=auth_headers(student.email),
        )
        assert resp.status_code == 503
        assert resp.json()["detail"] == "AI assistant is not configured"

    def test_error_mid_stream_still_ends_with_done(self, client, student, auth_headers,
                                                   assistant_routes, monkeypatch):
        async def failing_stream(messages, max_tokens=None):
            yield "Partial "
            raise RuntimeError("upstream overloaded")

        monkeypatch.setattr(assistant_routes, "get_anthropic_client", lambda: object())
        monkeypatch.setattr(assistant_routes, "stream_chat", failing_stream)

        resp = client.post(
            "/api/assistant/chat",
            json={"messages": [{"role": "user", "content": "hi"}]},
            headers=auth_headers(student.email),
        )
        events = _events(resp.text)
        assert json.loads(events[0])["choices"][0]["delta"]["content"] == "Partial "
        assert "error" in json.loads(events[1])
        assert "overloaded" not in events[1]
        assert events[-1] == "[DONE]"


class TestContext:
    def test_text_file_extracted(self, client, student, auth_headers):
        resp = client.post(
            "/api/assistant/context",
            files={"file": ("notes.txt", b"  Photosynthesis converts light.  ", "text/plain")},
            headers=auth_headers(student.email),
        )
        assert resp.status_code == 200, resp.text
        assert resp.json() == {
            "file_name": "notes.txt",
            "text": "Photosynthesis converts light.",
            "total_chars": len("Photosynthesis converts light."),
            "truncated": False,
        }

    def test_long_text_truncated(self, client, student, auth_headers):
        from app.core.config import settings

        body = "a" * (settings.assistant_context_chars + 500)
        resp = client.post(
            "/api/assistant/context",
            files={"file": ("long.md", body.encode(), "text/markdown")},
            headers=auth_headers(student.email),
        )
        data = resp.json()
        assert data["truncated"] is True
        assert len(data["text"]) == settings.assistant_context_chars
        assert data["total_chars"] == len(body)

    def test_unsupported_type_rejected(self, client, student, auth_headers):
        resp = client.post(
            "/api/assistant/context",
            files={"file": ("virus.exe", b"MZ", "application/octet-stream")},
            headers=auth_headers(student.email),
        )
        assert resp.status_code == 400

    def test_empty_file_rejected(self, client, student, auth_headers):
        resp = client.post(
            "/api/assistant/context",
            files={"file": ("blank.txt", b"   \n", "text/plain")},
            headers=auth_headers(student.email),
        )
        assert resp.status_code == 400

    def test_formats(self, client):
        body = client.get("/api/assistant/formats").json()
        assert ".pdf" in body["documents"]
        assert body["max_file_size_mb"] == 20


def test_build_chat_messages_without_context(app):
    from app.services.ai_service import build_chat_messages

    turns = [{"role": "user", "content": "hi"}]
    assert build_chat_messages(turns, "   ") == turns
    assert build_chat_messages(turns) is not turns
