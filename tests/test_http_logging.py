from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from tests.client_test_utils import (
    RecordingUpstream,
    build_test_client,
    gemini_text_response,
)

CHAT_BODY = {
    "model": "gemini-pro",
    "messages": [{"role": "user", "content": "hello"}],
}


def _records(log_dir: Path) -> list[dict[str, Any]]:
    files = sorted(log_dir.glob("http-*.jsonl"))
    assert files, "expected an http log file"
    lines = files[-1].read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines if line.strip()]


def test_chat_request_and_response_are_logged(monkeypatch: Any, tmp_path: Path) -> None:
    upstream = RecordingUpstream((200, gemini_text_response("hi there")))
    with build_test_client(monkeypatch, tmp_path, upstream) as client:
        response = client.post(
            "/v1/chat/completions",
            json=CHAT_BODY,
            headers={"User-Agent": "pytest-agent"},
        )
        assert response.status_code == 200
        assert response.json()["choices"][0]["message"]["content"] == "hi there"

    records = _records(tmp_path / "logs")
    request_entry = next(item for item in records if item["event"] == "request")
    response_entry = next(item for item in records if item["event"] == "response")

    assert request_entry["method"] == "POST"
    assert request_entry["url"].endswith("/v1/chat/completions")
    assert request_entry["body"] == CHAT_BODY
    assert request_entry["user_agent"] == "pytest-agent"

    assert response_entry["status"] == 200
    assert response_entry["user_agent"] == "pytest-agent"
    assert response_entry["response_body"]["object"] == "chat.completion"
    assert int(response_entry["content_length"]) > 0
    assert "request_body" not in response_entry


def test_error_response_log_includes_request_body(
    monkeypatch: Any, tmp_path: Path
) -> None:
    body = {**CHAT_BODY, "model": "gpt-4"}
    with build_test_client(monkeypatch, tmp_path) as client:
        response = client.post("/v1/chat/completions", json=body)
        assert response.status_code == 400

    records = _records(tmp_path / "logs")
    response_entry = next(item for item in records if item["event"] == "response")
    assert response_entry["status"] == 400
    assert response_entry["request_body"] == body
    assert response_entry["response_body"]["error"]["type"] == "invalid_request_error"


def test_streaming_response_is_logged_without_body(
    monkeypatch: Any, tmp_path: Path
) -> None:
    upstream = RecordingUpstream((200, gemini_text_response("streamed")))
    with build_test_client(monkeypatch, tmp_path, upstream) as client:
        response = client.post(
            "/v1/chat/completions", json={**CHAT_BODY, "stream": True}
        )
        assert response.status_code == 200
        assert response.text.endswith("data: [DONE]\n\n")

    records = _records(tmp_path / "logs")
    response_entry = next(item for item in records if item["event"] == "response")
    assert response_entry["content_length"] == "streaming"
    assert "response_body" not in response_entry


def test_only_chat_requests_get_request_entries(monkeypatch: Any, tmp_path: Path) -> None:
    with build_test_client(monkeypatch, tmp_path) as client:
        assert client.get("/health").status_code == 200

    records = _records(tmp_path / "logs")
    assert [item["event"] for item in records] == ["response"]
    assert records[0]["response_body"] == {"status": "ok"}


def test_http_log_can_be_disabled(monkeypatch: Any, tmp_path: Path) -> None:
    with build_test_client(monkeypatch, tmp_path, HTTP_LOG_ENABLED="false") as client:
        assert client.get("/health").status_code == 200

    assert list((tmp_path / "logs").glob("http-*.jsonl")) == []


def test_static_file_body_is_not_logged(monkeypatch: Any, tmp_path: Path) -> None:
    image_bytes = b"\x89PNG\r\n\x1a\n\x00\xff"
    static_dir = tmp_path / "public"
    static_dir.mkdir()
    (static_dir / "logo.png").write_bytes(image_bytes)

    with build_test_client(monkeypatch, tmp_path) as client:
        response = client.get("/logo.png")
        assert response.status_code == 200
        assert response.content == image_bytes

    records = _records(tmp_path / "logs")
    response_entry = next(item for item in records if item["event"] == "response")
    assert response_entry["content_length"] == str(len(image_bytes))
    assert "response_body" not in response_entry
