"""Tests for the FastAPI transport."""

import importlib
import json

import pytest
from fastapi.testclient import TestClient

from intentflow.config import testing_settings
from intentflow.factory import build_workflow
from intentflow.storage import create_memory_store
from tests.fakes import SCENARIO_A_INPUT, static_handler

app_module = importlib.import_module("intentflow.transport.app")


@pytest.fixture
def client(monkeypatch):
    async def fake_create_workflow_from_env(handlers=None):
        store = await create_memory_store()
        engine = await build_workflow(
            testing_settings(),
            store,
            handlers={
                "inventory": static_handler("已记录：抽纸 -1 包"),
                "finance": static_handler("本月支出 1200 元"),
            },
        )
        return engine, store

    monkeypatch.setattr(app_module, "create_workflow_from_env", fake_create_workflow_from_env)

    with TestClient(app_module.app) as client:
        yield client


def test_chat(client):
    response = client.post("/chat", json={"message": SCENARIO_A_INPUT, "conversation_id": "thread-a"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["response_text"] == "已记录：抽纸 -1 包"
    assert body["conversation_id"] == "thread-a"
    assert body["metadata"]["path"] == ["routing", "inventory", "formatting"]


def test_chat_generates_conversation_id(client):
    body = client.post("/chat", json={"message": "生成本月财务报告"}).json()

    assert body["conversation_id"].startswith("thread-")
    assert body["response_text"] == "本月支出 1200 元"


def test_chat_unregistered_agent_uses_fallback(client):
    body = client.post("/chat", json={"message": "提醒我明天买牛奶"}).json()

    assert body["success"] is True
    assert body["metadata"]["routing"]["target_agent_type"] == "inventory"
    assert body["response_text"] == "已记录：抽纸 -1 包"


def test_chat_rejects_empty_message(client):
    response = client.post("/chat", json={"message": ""})

    assert response.status_code == 422


def test_chat_stream(client):
    response = client.post("/chat/stream", json={"message": SCENARIO_A_INPUT, "conversation_id": "thread-s"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    updates = [json.loads(line) for line in response.text.splitlines() if line]
    assert [u["node"] for u in updates] == ["routing", "inventory", "formatting", "__end__"]
    assert updates[-1]["result"]["response_text"] == "已记录：抽纸 -1 包"


def test_delete_conversation(client):
    assert client.delete("/conversations/thread-d").status_code == 404

    client.post("/chat", json={"message": SCENARIO_A_INPUT, "conversation_id": "thread-d"})
    response = client.delete("/conversations/thread-d")

    assert response.status_code == 200
    assert response.json() == {"conversation_id": "thread-d", "deleted": True}
    assert client.delete("/conversations/thread-d").status_code == 404


def test_health(client):
    client.post("/chat", json={"message": SCENARIO_A_INPUT})

    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["agents"] == 2
    assert body["engine"]["executions"] == 1
    assert body["engine"]["max_steps"] == 5
    assert body["routing"]["total_decisions"] == 1
