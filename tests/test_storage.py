"""Tests for the conversation state stores and the storage factory."""

from datetime import datetime, timezone

import pytest

from intentflow.state.models import (
    AgentContext,
    ConversationState,
    ConversationTurn,
    RoutingDecision,
)
from intentflow.storage import (
    InMemoryConversationStore,
    StorageBackend,
    StorageError,
    StorageSettings,
    create_sqlite_store,
    create_store,
    settings_from_env,
)
from intentflow.storage.factory import _async_url
from intentflow.storage.redis import RedisConversationStore
from tests.fakes import FakeRedis


def sample_state(conversation_id: str = "conv-1") -> ConversationState:
    decision = RoutingDecision(
        target_agent_type="inventory",
        confidence=0.85,
        reasoning="Matched rule inventory_consume with confidence 0.85",
        extracted_entities={"quantity": 1, "unit": "包", "action": "consume", "item_name": "抽纸"},
        suggested_actions=["inventory_consume"],
    )
    turn = ConversationTurn(
        user_input="抽纸消耗1包",
        agent_response="已记录",
        intent="inventory_request",
        entities=dict(decision.extracted_entities),
        agent_id="inventory",
        timestamp=datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc),
    )
    return ConversationState(
        conversation_id=conversation_id,
        user_id="user-1",
        current_intent="inventory_request",
        entities=dict(decision.extracted_entities),
        history=[turn],
        last_activity=datetime(2024, 5, 1, 8, 30, 5, tzinfo=timezone.utc),
        agent_context=AgentContext(
            routing_history=[decision],
            last_routing_decision=decision,
            last_routing_time=datetime(2024, 5, 1, 8, 30, 1, tzinfo=timezone.utc),
            user_preferences={"language": "zh"},
            has_photo=True,
            extra={"household": 3},
        ),
    )


async def assert_round_trip(store) -> None:
    state = sample_state()

    await store.save("conv-1", state)
    loaded = await store.load("conv-1")

    assert loaded is not None
    assert loaded.history == state.history
    assert loaded.agent_context == state.agent_context
    assert loaded.last_activity == state.last_activity
    assert loaded.entities == state.entities


async def assert_overwrite_and_delete(store) -> None:
    state = sample_state()
    await store.save("conv-1", state)

    state.history.append(ConversationTurn(user_input="查看库存", agent_id="inventory"))
    state.current_intent = "inventory_request"
    await store.save("conv-1", state)

    loaded = await store.load("conv-1")
    assert [t.user_input for t in loaded.history] == ["抽纸消耗1包", "查看库存"]

    assert await store.delete("conv-1")
    assert await store.load("conv-1") is None
    assert not await store.delete("conv-1")


# =============================================================================
# In-memory
# =============================================================================

@pytest.mark.asyncio
async def test_memory_round_trip():
    await assert_round_trip(InMemoryConversationStore())


@pytest.mark.asyncio
async def test_memory_overwrite_and_delete():
    await assert_overwrite_and_delete(InMemoryConversationStore())


@pytest.mark.asyncio
async def test_memory_store_isolates_callers():
    store = InMemoryConversationStore()
    state = sample_state()
    await store.save("conv-1", state)

    state.history.clear()
    loaded = await store.load("conv-1")
    loaded.agent_context.user_preferences["language"] = "en"

    again = await store.load("conv-1")
    assert len(again.history) == 1
    assert again.agent_context.user_preferences["language"] == "zh"
    assert store.count() == 1


# =============================================================================
# SQLite via SQLAlchemy
# =============================================================================

@pytest.mark.asyncio
async def test_sqlite_round_trip(tmp_path):
    store = await create_sqlite_store(str(tmp_path / "conversations.db"))
    try:
        await assert_round_trip(store)
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_sqlite_overwrite_and_delete(tmp_path):
    store = await create_sqlite_store(str(tmp_path / "conversations.db"))
    try:
        await assert_overwrite_and_delete(store)
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_sqlite_survives_reopen(tmp_path):
    path = str(tmp_path / "conversations.db")
    store = await create_sqlite_store(path)
    await store.save("conv-1", sample_state())
    await store.close()

    reopened = await create_sqlite_store(path)
    try:
        loaded = await reopened.load("conv-1")
        assert loaded.history[0].entities["item_name"] == "抽纸"
    finally:
        await reopened.close()


# =============================================================================
# Redis
# =============================================================================

@pytest.mark.asyncio
async def test_redis_round_trip():
    await assert_round_trip(RedisConversationStore(FakeRedis()))


@pytest.mark.asyncio
async def test_redis_overwrite_and_delete():
    await assert_overwrite_and_delete(RedisConversationStore(FakeRedis()))


@pytest.mark.asyncio
async def test_redis_keys_and_ttl():
    redis = FakeRedis()
    store = RedisConversationStore(redis, key_prefix="home", ttl_seconds=60)

    await store.save("conv-1", sample_state())

    assert list(redis.data) == ["home:conversation:conv-1"]
    assert redis.ttls["home:conversation:conv-1"] == 60


@pytest.mark.asyncio
async def test_redis_corrupt_record():
    redis = FakeRedis()
    redis.data["intentflow:conversation:conv-1"] = b"{not json"

    with pytest.raises(StorageError):
        await RedisConversationStore(redis).load("conv-1")


@pytest.mark.asyncio
async def test_redis_close_only_when_owned():
    shared = FakeRedis()
    await RedisConversationStore(shared).close()
    assert not shared.closed

    owned = FakeRedis()
    await RedisConversationStore(owned, owns_client=True).close()
    assert owned.closed


# =============================================================================
# Factory
# =============================================================================

def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("INTENTFLOW_DATABASE_URL", "postgresql://user:pw@db/intentflow")
    monkeypatch.delenv("INTENTFLOW_STORAGE_BACKEND", raising=False)
    monkeypatch.setenv("INTENTFLOW_STATE_TTL", "120")

    settings = settings_from_env()

    assert settings.backend == StorageBackend.POSTGRESQL
    assert settings.state_ttl_seconds == 120


def test_settings_default_to_memory(monkeypatch):
    for name in ("INTENTFLOW_DATABASE_URL", "INTENTFLOW_STORAGE_BACKEND", "INTENTFLOW_REDIS_URL"):
        monkeypatch.delenv(name, raising=False)

    settings = settings_from_env()

    assert settings.backend == StorageBackend.MEMORY
    assert settings.redis_url is None


@pytest.mark.parametrize(
    "backend, url, expected",
    [
        (StorageBackend.SQLITE, "sqlite:///data.db", "sqlite+aiosqlite:///data.db"),
        (StorageBackend.POSTGRESQL, "postgres://db/x", "postgresql+asyncpg://db/x"),
        (StorageBackend.MYSQL, "mysql://db/x", "mysql+aiomysql://db/x"),
        (StorageBackend.SQLITE, "sqlite+aiosqlite:///data.db", "sqlite+aiosqlite:///data.db"),
    ],
)
def test_async_driver_url(backend, url, expected):
    assert _async_url(backend, url) == expected


@pytest.mark.asyncio
async def test_create_store_requires_url():
    with pytest.raises(ValueError):
        await create_store(StorageSettings(backend=StorageBackend.SQLITE))


@pytest.mark.asyncio
async def test_create_memory_store():
    store = await create_store(StorageSettings())

    assert isinstance(store, InMemoryConversationStore)
