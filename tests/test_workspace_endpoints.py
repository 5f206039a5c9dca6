"""Endpoint tests for the workspace host adapter.

Route functions are called directly where possible; the ASGI round trip is
exercised once per route family through a raw scope, without a test client.
"""

import asyncio
import json
from typing import Optional

import pytest
from fastapi import HTTPException

import app


def _run_app(method: str, path: str, *, payload: Optional[dict] = None):
    body = b""
    headers = [(b"host", b"testserver")]
    if payload is not None:
        body = json.dumps(payload).encode("utf-8")
        headers.extend(
            [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode()),
            ]
        )
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method.upper(),
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "scheme": "http",
        "query_string": b"",
        "headers": headers,
        "client": ("testclient", 12345),
        "server": ("testserver", 80),
        "state": {},
    }

    messages = []

    async def receive():
        nonlocal body
        if body:
            chunk, body = body, b""
            return {"type": "http.request", "body": chunk, "more_body": False}
        return {"type": "http.disconnect"}

    async def send(message):
        messages.append(message)

    async def _call():
        await app.app(scope, receive, send)

    asyncio.run(_call())

    status = 500
    body_bytes = b""
    for message in messages:
        if message["type"] == "http.response.start":
            status = message["status"]
        elif message["type"] == "http.response.body":
            body_bytes += message.get("body", b"")
    return status, json.loads(body_bytes.decode("utf-8") or "{}")


def test_extract_endpoint_returns_document():
    response = app.extract_workspace_content(app.ExtractBody(message="**What is 27 + 15?**"))

    assert response["hasStructuredContent"] is True
    assert response["document"]["type"] == "math_problems"
    assert response["document"]["problems"][0]["kind"] == "addition"


def test_extract_endpoint_over_asgi_with_lesson_context():
    status, payload = _run_app(
        "POST",
        "/workspace/extract",
        payload={
            "message": "Let's tackle the assignment.",
            "lesson_context": {"title": "Unit 3", "lesson_json": {"learning_objectives": ["Add fractions"]}},
        },
    )

    assert status == 200
    assert payload["hasStructuredContent"] is False
    assert payload["document"]["data"]["title"] == "Unit 3"
    assert payload["document"]["data"]["contentType"] == "lesson"


def test_extract_endpoint_without_match():
    response = app.extract_workspace_content(app.ExtractBody(message="Good morning!"))

    assert response == {"document": None, "hasStructuredContent": False}


def test_actions_endpoint_keeps_state_per_session(reset_sessions, legacy_payload):
    first = app.apply_workspace_actions(
        "child-1",
        app.ActionBatchBody(actions=[{"action": "create_workspace", "workspace": legacy_payload}]),
    )
    second = app.apply_workspace_actions(
        "child-1",
        app.ActionBatchBody(actions=[{"action": "add_problems", "newProblems": [{"text": "4 + 4"}]}]),
    )
    other = app.apply_workspace_actions("child-2", app.ActionBatchBody(actions=[]))

    assert len(first["workspace"]["problems"]) == 2
    assert len(second["workspace"]["problems"]) == 3
    assert other["workspace"] is None


def test_actions_endpoint_reports_agent_errors_once(reset_sessions):
    body = app.ActionBatchBody(actions=[{"action": "error", "message": "Problem not found"}])

    response = app.apply_workspace_actions("child-1", body)
    follow_up = app.apply_workspace_actions("child-1", app.ActionBatchBody())

    assert response["errors"] == ["Problem not found"]
    assert follow_up["errors"] == []


def test_user_mark_goes_through_reducer(reset_sessions, current_payload):
    app.apply_workspace_actions(
        "child-1",
        app.ActionBatchBody(actions=[{"action": "create_workspace", "workspace": current_payload}]),
    )

    response = app.mark_workspace_item("child-1", 1, app.MarkBody(correct=True, feedback="Nice!"))

    item = response["workspace"]["content"][1]
    assert item["status"] == "correct"
    assert item["feedback"] == "Nice!"
    assert response["workspace"]["stats"] == current_payload["stats"]


def test_user_mark_rejects_missing_items(reset_sessions, current_payload):
    with pytest.raises(HTTPException) as exc:
        app.mark_workspace_item("nobody", 0, app.MarkBody(correct=False))
    assert exc.value.status_code == 404

    app.apply_workspace_actions(
        "child-1",
        app.ActionBatchBody(actions=[{"action": "create_workspace", "workspace": current_payload}]),
    )
    with pytest.raises(HTTPException) as exc:
        app.mark_workspace_item("child-1", 3, app.MarkBody(correct=False))
    assert exc.value.status_code == 404


def test_get_and_delete_over_asgi(reset_sessions, current_payload):
    status, _ = _run_app("GET", "/workspace/child-9")
    assert status == 404

    status, created = _run_app(
        "POST",
        "/workspace/child-9/actions",
        payload={"actions": [{"action": "create_workspace", "workspace": current_payload}]},
    )
    assert status == 200
    assert created["workspace"]["title"] == "States of Matter"

    status, fetched = _run_app("GET", "/workspace/child-9")
    assert status == 200
    assert fetched["workspace"] == created["workspace"]

    status, cleared = _run_app("DELETE", "/workspace/child-9")
    assert status == 200
    assert cleared["workspace"] is None

    status, _ = _run_app("GET", "/workspace/child-9")
    assert status == 404


def test_delete_removes_the_session(reset_sessions, current_payload):
    _run_app(
        "POST",
        "/workspace/child-4/actions",
        payload={"actions": [{"action": "create_workspace", "workspace": current_payload}]},
    )
    assert list(app.SESSIONS) == ["child-4"]

    status, cleared = _run_app("DELETE", "/workspace/child-4")
    assert status == 200
    assert cleared == {"sessionId": "child-4", "workspace": None, "errors": []}
    assert app.SESSIONS == {}

    status, _ = _run_app("DELETE", "/workspace/never-seen")
    assert status == 200
    assert app.SESSIONS == {}


def test_session_mark_checks_index_against_current_state(reset_sessions, current_payload):
    session = app.get_session("child-5")
    assert session.mark(0, correct=True) is False

    session.apply([{"action": "create_workspace", "workspace": current_payload}])
    assert session.mark(3, correct=True) is False
    assert session.mark(-1, correct=False) is False
    assert [item.status for item in session.workspace.items] == ["unattempted"] * 3

    assert session.mark(2, correct=False, feedback="Think about density.") is True
    assert session.workspace.items[2].status == "incorrect"
    assert session.workspace.items[2].feedback == "Think about density."

    session.apply([{"action": "clear_workspace"}])
    assert session.mark(0, correct=True) is False
    assert session.workspace is None
