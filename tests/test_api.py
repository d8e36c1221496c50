"""Test FastAPI endpoints (unit-level, no real LLM calls)."""

import pytest
from fastapi.testclient import TestClient

from nodeflow.actions import ActionRegistry
from nodeflow.errors import CompletionFailed
from nodeflow.graph import load_graph
from nodeflow.server import app, runtime

from tests.fakes import pick, say, scripted, two_step_graph

client = TestClient(app)

# Each conversation created during a test takes the next script from this list
scripts: list[list] = []


def scripted_factory(model: str):
    responses = scripts.pop(0) if scripts else []
    provider, _ = scripted(*responses)
    return provider


@pytest.fixture(autouse=True)
def configure_runtime():
    runtime.configure(load_graph(two_step_graph()), ActionRegistry(), provider_factory=scripted_factory)
    scripts.clear()
    yield
    runtime.conversations.clear()
    scripts.clear()


def create(*responses) -> str:
    scripts.append(list(responses))
    resp = client.post("/conversations", json={"model": "openai/scripted"})
    assert resp.status_code == 200
    return resp.json()["id"]


def test_get_graph():
    resp = client.get("/graph")
    assert resp.status_code == 200
    data = resp.json()
    assert data["start_node"] == "A"
    assert set(data["nodes"]) == {"A", "B"}


def test_list_conversations_empty():
    resp = client.get("/conversations")
    assert resp.status_code == 200
    assert resp.json() == []


def test_get_conversation_not_found():
    assert client.get("/conversations/nonexistent").status_code == 404
    assert client.post("/conversations/nonexistent/submit", json={"message": "hi"}).status_code == 404


def test_create_conversation():
    resp = client.post("/conversations", json={})
    assert resp.status_code == 200
    data = resp.json()
    assert data["current_node_id"] == "A"
    assert data["current_node_name"] == "Start"
    assert data["finished"] is False
    assert data["messages"] == 1
    assert "id" in data


def test_list_conversations_after_create():
    create()
    create()
    resp = client.get("/conversations")
    assert len(resp.json()) == 2


def test_submit_free_text():
    conversation_id = create(say("Hello! How can I help?"))
    resp = client.post(f"/conversations/{conversation_id}/submit", json={"message": "hi"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["reply"] == "Hello! How can I help?"
    assert data["finished"] is False
    assert data["current_node_id"] == "A"
    assert data["visited"] == []


def test_submit_runs_to_the_end():
    conversation_id = create(pick("go", "Moving on."), say("Anything else?"), pick("end", "Goodbye."))

    first = client.post(f"/conversations/{conversation_id}/submit", json={"message": "hi"}).json()
    assert first["reply"] == "Anything else?"
    assert first["current_node_id"] == "B"
    assert first["visited"] == ["B"]

    second = client.post(f"/conversations/{conversation_id}/submit", json={"message": "no"}).json()
    assert second["finished"] is True
    assert second["reply"] == "Goodbye."

    summary = client.get(f"/conversations/{conversation_id}").json()
    assert summary["finished"] is True
    assert summary["current_node_id"] is None


def test_submit_after_finish_conflicts():
    conversation_id = create(pick("go"), pick("end", "Bye."))
    client.post(f"/conversations/{conversation_id}/submit", json={"message": "hi"})
    resp = client.post(f"/conversations/{conversation_id}/submit", json={"message": "again"})
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Conversation has finished"


def test_completion_failure_is_retryable():
    conversation_id = create(CompletionFailed("service down"), say("Back now."))

    resp = client.post(f"/conversations/{conversation_id}/submit", json={"message": "hi"})
    assert resp.status_code == 503
    assert client.get(f"/conversations/{conversation_id}").json()["messages"] == 1

    resp = client.post(f"/conversations/{conversation_id}/submit", json={"message": "hi"})
    assert resp.status_code == 200
    assert resp.json()["reply"] == "Back now."


def test_submit_requires_message():
    conversation_id = create()
    resp = client.post(f"/conversations/{conversation_id}/submit", json={})
    assert resp.status_code == 422


def test_transcript():
    conversation_id = create(say("Hello!"))
    client.post(f"/conversations/{conversation_id}/submit", json={"message": "hi"})

    resp = client.get(f"/conversations/{conversation_id}/transcript")
    assert resp.status_code == 200
    roles = [m["role"] for m in resp.json()]
    assert roles == ["system", "user", "assistant"]

    resp = client.get(f"/conversations/{conversation_id}/transcript", params={"limit": 1})
    assert [m["role"] for m in resp.json()] == ["assistant"]


def test_snapshot():
    conversation_id = create()
    resp = client.get(f"/conversations/{conversation_id}/snapshot")
    assert resp.status_code == 200
    data = resp.json()
    assert data["id"] == conversation_id
    assert data["state"]["current_node_id"] == "A"


def test_events():
    conversation_id = create(pick("go", "On to B."), say("Hi from B."))
    client.post(f"/conversations/{conversation_id}/submit", json={"message": "hi"})

    resp = client.get(f"/conversations/{conversation_id}/events", params={"limit": 100})
    assert resp.status_code == 200
    types = [e["type"] for e in resp.json()]
    assert types.index("conversation.started") < types.index("outcome.selected")
    assert types[-1] == "turn.completed"
    assert all(e["conversation_id"] == conversation_id for e in resp.json())


def test_delete_conversation():
    conversation_id = create()
    resp = client.delete(f"/conversations/{conversation_id}")
    assert resp.status_code == 200
    assert client.get(f"/conversations/{conversation_id}").status_code == 404
