# tests/test_server.py

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

import server
from config import Settings
from errors import ProviderAuthError, ProviderError, ProviderUnavailable

PARSE_URL = "/api/parse-todos"


def _reply(todos) -> str:
    return json.dumps({"todos": todos}, ensure_ascii=False)


def test_parse_todos_meeting_report_call(client, provider, store) -> None:
    provider.reply = '{"todos":["开会","写报告","给客户打电话"]}'

    resp = client.post(PARSE_URL, json={
        "text": "明天要开会，然后写报告，还要给客户打电话",
        "userId": "user-42",
    })

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["count"] == 3
    assert [t["text"] for t in body["todos"]] == ["开会", "写报告", "给客户打电话"]
    for todo in body["todos"]:
        assert todo["user_id"] == "user-42"
        assert todo["completed"] is False
        assert todo["id"]
        assert todo["created_at"]
    assert len(store.rows) == 3


def test_parse_todos_single_item(client, provider, store) -> None:
    provider.reply = '{"todos":["买菜"]}'

    resp = client.post(PARSE_URL, json={"text": "买菜", "userId": "user-42"})

    assert resp.status_code == 200
    assert resp.json()["count"] == 1
    assert len(store.rows) == 1


def test_parse_todos_store_failure_is_500_and_writes_nothing(client, provider, store) -> None:
    provider.reply = _reply(["a", "b"])
    store.fail_inserts = True

    resp = client.post(PARSE_URL, json={"text": "a then b", "userId": "user-42"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to save todos"}
    assert client.get("/api/todos", params={"userId": "user-42"}).json() == {"todos": []}


@pytest.mark.parametrize(
    "payload",
    [
        {"userId": "u"},
        {"text": "buy milk"},
        {"text": "", "userId": "u"},
        {"text": "x" * 2001, "userId": "u"},
        {"text": 42, "userId": "u"},
    ],
)
def test_parse_todos_bad_input_is_400(client, provider, payload) -> None:
    resp = client.post(PARSE_URL, json=payload)

    assert resp.status_code == 400
    assert "error" in resp.json()
    assert provider.calls == []


def test_parse_todos_invalid_json_body_is_400(client) -> None:
    resp = client.post(PARSE_URL, content=b"{not json", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400


def test_parse_todos_nothing_extracted_is_400(client, provider) -> None:
    provider.reply = '{"todos": []}'
    resp = client.post(PARSE_URL, json={"text": "hmm", "userId": "u"})
    assert resp.status_code == 400
    assert "rephrase" in resp.json()["error"]


def test_parse_todos_malformed_reply_is_500(client, provider, store) -> None:
    provider.reply = "Sure! Here are your todos: buy milk"
    resp = client.post(PARSE_URL, json={"text": "buy milk", "userId": "u"})
    assert resp.status_code == 500
    assert store.insert_calls == []


@pytest.mark.parametrize(
    "error, status",
    [
        (ProviderAuthError(), 401),
        (ProviderUnavailable(), 503),
        (ProviderError("AI service error: overloaded"), 500),
    ],
)
def test_parse_todos_provider_errors(client, provider, error, status) -> None:
    provider.error = error
    resp = client.post(PARSE_URL, json={"text": "buy milk", "userId": "u"})
    assert resp.status_code == status
    assert resp.json() == {"error": error.message}


def test_unexpected_error_hides_details(client, provider) -> None:
    provider.error = RuntimeError("secret internal detail")
    resp = client.post(PARSE_URL, json={"text": "buy milk", "userId": "u"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}


def test_list_todos_is_scoped_to_user(client, store) -> None:
    store.insert_todos([
        {"user_id": "alice", "text": "a1", "completed": False},
        {"user_id": "bob", "text": "b1", "completed": False},
        {"user_id": "alice", "text": "a2", "completed": False},
    ])

    resp = client.get("/api/todos", params={"userId": "alice"})

    assert resp.status_code == 200
    assert [t["text"] for t in resp.json()["todos"]] == ["a2", "a1"]


def test_list_todos_requires_user(client) -> None:
    assert client.get("/api/todos").status_code == 400


def test_create_todo(client, store) -> None:
    resp = client.post("/api/todos", json={
        "userId": "alice",
        "text": "  walk the dog  ",
        "imageUrl": "https://x.supabase.co/storage/v1/object/public/my-todo/alice/dog.png",
    })

    assert resp.status_code == 201
    todo = resp.json()["todo"]
    assert todo["text"] == "walk the dog"
    assert todo["completed"] is False
    assert todo["image_url"].endswith("alice/dog.png")
    assert store.insert_calls[0]["privileged"] is True


@pytest.mark.parametrize("text", ["   ", "x" * 501])
def test_create_todo_rejects_bad_text(client, store, text) -> None:
    resp = client.post("/api/todos", json={"userId": "alice", "text": text})
    assert resp.status_code == 400
    assert store.rows == []


def test_toggle_completed(client, store) -> None:
    todo = store.insert_todos([{"user_id": "alice", "text": "a", "completed": False}])[0]

    resp = client.patch(f"/api/todos/{todo.id}", json={"userId": "alice", "completed": True})

    assert resp.status_code == 200
    assert resp.json()["todo"]["completed"] is True


def test_update_other_users_todo_is_404(client, store) -> None:
    todo = store.insert_todos([{"user_id": "alice", "text": "a", "completed": False}])[0]

    resp = client.patch(f"/api/todos/{todo.id}", json={"userId": "mallory", "completed": True})

    assert resp.status_code == 404
    assert store.rows[0].completed is False


def test_update_without_changes_is_400(client, store) -> None:
    todo = store.insert_todos([{"user_id": "alice", "text": "a", "completed": False}])[0]
    resp = client.patch(f"/api/todos/{todo.id}", json={"userId": "alice"})
    assert resp.status_code == 400


def test_clearing_image_releases_it(client, store) -> None:
    url = "https://x.supabase.co/storage/v1/object/public/my-todo/alice/cat.png"
    todo = store.insert_todos([{"user_id": "alice", "text": "a", "completed": False, "image_url": url}])[0]

    resp = client.patch(f"/api/todos/{todo.id}", json={"userId": "alice", "imageUrl": None})

    assert resp.status_code == 200
    assert resp.json()["todo"]["image_url"] is None
    assert store.released_images == [url]


def test_delete_todo_releases_image(client, store) -> None:
    url = "https://x.supabase.co/storage/v1/object/public/my-todo/alice/cat.png"
    todo = store.insert_todos([{"user_id": "alice", "text": "a", "completed": False, "image_url": url}])[0]

    resp = client.delete(f"/api/todos/{todo.id}", params={"userId": "alice"})

    assert resp.status_code == 200
    assert resp.json() == {"success": True}
    assert store.rows == []
    assert store.released_images == [url]


def test_delete_missing_todo_is_404(client) -> None:
    resp = client.delete("/api/todos/nope", params={"userId": "alice"})
    assert resp.status_code == 404


def test_health_endpoints(client) -> None:
    assert client.get("/").json()["status"] == "healthy"
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert "completion_provider_configured" in body



@pytest.fixture()
def unconfigured_client(monkeypatch):
    """App wired to real builders with no AI key and no Supabase URL"""
    monkeypatch.setattr(server, "get_settings", lambda: Settings())
    server.get_provider.cache_clear()
    server.get_store.cache_clear()
    with TestClient(server.app, raise_server_exceptions=False) as test_client:
        yield test_client
    server.get_provider.cache_clear()
    server.get_store.cache_clear()


@pytest.mark.parametrize(
    "payload",
    [
        {"text": "x" * 2001, "userId": "u"},
        {"userId": "u"},
        {"text": "buy milk"},
    ],
)
def test_bad_input_is_400_even_when_unconfigured(unconfigured_client, payload) -> None:
    resp = unconfigured_client.post(PARSE_URL, json=payload)
    assert resp.status_code == 400


def test_valid_input_reports_missing_ai_key_when_unconfigured(unconfigured_client) -> None:
    resp = unconfigured_client.post(PARSE_URL, json={"text": "buy milk", "userId": "u"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "AI API key is not configured"}


def test_create_todo_bad_text_is_400_when_unconfigured(unconfigured_client) -> None:
    resp = unconfigured_client.post("/api/todos", json={"userId": "u", "text": "   "})
    assert resp.status_code == 400
