"""Tests for IntentRouter decisions and conversation context handling."""

import pytest

from intentflow.config import RouterConfig
from intentflow.registry import AgentProfile
from intentflow.routing.router import IntentRouter
from intentflow.state.models import ConversationTurn, RoutingContext, RoutingDecision
from intentflow.storage import ConversationStateStore, StorageError
from tests.fakes import SCENARIO_A_INPUT, FakeTextGenerator, classification_reply, static_handler


class BrokenStore(ConversationStateStore):
    async def load(self, conversation_id):
        raise StorageError("database unavailable")

    async def save(self, conversation_id, state):
        raise StorageError("database unavailable")

    async def delete(self, conversation_id):
        raise StorageError("database unavailable")


def empty_context(conversation_id: str = "conv-1") -> RoutingContext:
    return RoutingContext(conversation_id=conversation_id, user_id="user-1")


# =============================================================================
# Decisions
# =============================================================================

@pytest.mark.asyncio
async def test_rule_classifier_without_generator(store, registry):
    router = IntentRouter(store, registry)

    decision = await router.decide(SCENARIO_A_INPUT, empty_context())

    assert decision.target_agent_type == "inventory"
    assert decision.confidence == pytest.approx(0.85)
    assert decision.extracted_entities == {
        "quantity": 1,
        "unit": "包",
        "action": "consume",
        "item_name": "抽纸",
    }


@pytest.mark.asyncio
async def test_llm_classification(store, registry):
    generator = FakeTextGenerator(
        classification_reply("inventory", 0.9, extractedEntities={"quantity": 2, "itemName": "抽纸"})
    )
    router = IntentRouter(store, registry, generator=generator)

    decision = await router.decide(SCENARIO_A_INPUT, empty_context())

    assert decision.target_agent_type == "inventory"
    assert decision.confidence == pytest.approx(0.9)
    # Model-reported entities override pattern ones key by key
    assert decision.extracted_entities["quantity"] == 2
    assert decision.extracted_entities["action"] == "consume"

    system_instruction, user_prompt = generator.calls[0]
    assert "inventory" in system_instruction and "targetAgent" in system_instruction
    assert SCENARIO_A_INPUT in user_prompt


@pytest.mark.asyncio
async def test_unknown_target_falls_back_with_penalty(store, registry):
    router = IntentRouter(store, registry, generator=FakeTextGenerator(classification_reply("weather", 0.95)))

    decision = await router.decide(SCENARIO_A_INPUT, empty_context())

    assert decision.target_agent_type == "inventory"
    assert decision.confidence == pytest.approx(0.75)
    assert "not registered" in decision.reasoning


@pytest.mark.asyncio
async def test_unknown_target_penalty_floor(store, registry):
    router = IntentRouter(
        store,
        registry,
        generator=FakeTextGenerator(classification_reply("weather", 0.35)),
        config=RouterConfig(enable_context_learning=False),
    )

    decision = await router.decide("你好", empty_context())

    assert decision.target_agent_type == "inventory"
    assert decision.confidence == pytest.approx(0.3)


@pytest.mark.asyncio
async def test_generator_failure_is_fatal_fallback(store, registry):
    """A failing text generator yields the fallback type at confidence 0.2."""
    router = IntentRouter(store, registry, generator=FakeTextGenerator(RuntimeError("service unavailable")))

    decision = await router.decide(SCENARIO_A_INPUT, empty_context())

    assert decision.target_agent_type == "inventory"
    assert decision.confidence == pytest.approx(0.2)
    assert decision.reasoning.startswith("Routing error, using fallback agent: ")
    assert "service unavailable" in decision.reasoning


@pytest.mark.asyncio
async def test_unparseable_reply_uses_rules(store, registry):
    router = IntentRouter(store, registry, generator=FakeTextGenerator("It is probably inventory."))

    decision = await router.decide(SCENARIO_A_INPUT, empty_context())

    assert decision.contextual_info == "rule:inventory_consume"
    assert decision.confidence == pytest.approx(0.85)


@pytest.mark.asyncio
async def test_out_of_range_confidence_is_clamped(store, registry):
    router = IntentRouter(store, registry, generator=FakeTextGenerator(classification_reply("finance", 7)))

    decision = await router.decide("本月支出分析", empty_context())

    assert decision.target_agent_type == "finance"
    assert decision.confidence == 1.0


@pytest.mark.asyncio
async def test_nan_confidence_does_not_pass_gate(store, registry):
    router = IntentRouter(
        store,
        registry,
        generator=FakeTextGenerator('{"targetAgent": "finance", "confidence": NaN}'),
        config=RouterConfig(enable_context_learning=False),
    )

    decision = await router.decide("本月支出分析", empty_context())

    assert decision.target_agent_type == "inventory"
    assert decision.confidence == 0.0


@pytest.mark.asyncio
async def test_low_confidence_substitutes_fallback(store, registry):
    router = IntentRouter(store, registry, generator=FakeTextGenerator(classification_reply("finance", 0.4)))

    decision = await router.decide("你好", empty_context())

    assert decision.target_agent_type == "inventory"
    assert decision.confidence == pytest.approx(0.4)
    assert "using fallback" in decision.reasoning


@pytest.mark.asyncio
async def test_context_boost_keeps_target(store, registry):
    """History (+0.1) and more than two entities (+0.1) lift a weak decision over the threshold."""
    router = IntentRouter(store, registry, generator=FakeTextGenerator(classification_reply("finance", 0.55)))
    context = empty_context()
    context.session_history.append(
        ConversationTurn(user_input="本月支出分析", agent_id="finance", intent="finance_request")
    )

    decision = await router.decide(SCENARIO_A_INPUT, context)

    assert decision.target_agent_type == "finance"
    assert decision.confidence == pytest.approx(0.75)
    assert "context boost" in decision.reasoning


@pytest.mark.asyncio
async def test_context_boost_uses_cached_decisions(store, registry):
    router = IntentRouter(store, registry)
    router.remember_decision("conv-1", RoutingDecision(target_agent_type="finance", confidence=0.9))
    weak = RoutingDecision(target_agent_type="finance", confidence=0.4)

    assert router.context_boost(weak, empty_context()) == pytest.approx(0.1)
    assert router.context_boost(weak, empty_context("conv-2")) == 0.0


@pytest.mark.asyncio
async def test_context_learning_disabled(store, registry):
    router = IntentRouter(
        store,
        registry,
        generator=FakeTextGenerator(classification_reply("finance", 0.55)),
        config=RouterConfig(enable_context_learning=False),
    )

    decision = await router.decide(SCENARIO_A_INPUT, empty_context())

    assert decision.target_agent_type == "inventory"
    assert decision.confidence == pytest.approx(0.55)


@pytest.mark.asyncio
async def test_profiles_registered_later_add_keyword_hits(store, registry):
    router = IntentRouter(store, registry)
    before = await router.decide(SCENARIO_A_INPUT, empty_context())

    await registry.register(
        "inventory",
        static_handler("inventory handled"),
        profile=AgentProfile(agent_type="inventory", name="Inventory Agent", keywords=["抽纸", "包"]),
        replace=True,
    )
    after = await router.decide(SCENARIO_A_INPUT, empty_context())

    assert before.confidence == pytest.approx(0.85)
    assert after.confidence == pytest.approx(0.9)


@pytest.mark.asyncio
async def test_decision_cache_evicts_least_recent_conversation(store, registry):
    router = IntentRouter(store, registry, config=RouterConfig(max_cached_conversations=2))

    for conversation_id in ("conv-1", "conv-2", "conv-1", "conv-3"):
        await router.decide(SCENARIO_A_INPUT, empty_context(conversation_id))

    weak = RoutingDecision(target_agent_type="inventory", confidence=0.4)
    assert router.routing_stats()["conversations"] == 2
    assert router.context_boost(weak, empty_context("conv-1")) == pytest.approx(0.1)
    assert router.context_boost(weak, empty_context("conv-2")) == 0.0

# =============================================================================
# Context
# =============================================================================

@pytest.mark.asyncio
async def test_update_context_persists_turn(store, registry):
    router = IntentRouter(store, registry)
    context = await router.get_context("conv-1", "user-1")
    decision = await router.decide(SCENARIO_A_INPUT, context)

    turn = await router.update_context(context, decision, SCENARIO_A_INPUT)

    state = await store.load("conv-1")
    assert state is not None
    assert state.user_id == "user-1"
    assert state.current_intent == "inventory_request"
    assert [t.turn_id for t in state.history] == [turn.turn_id]
    assert turn.intent == "inventory_request"
    assert turn.agent_id == "inventory"
    assert turn.entities["item_name"] == "抽纸"
    assert state.agent_context.last_routing_decision == decision
    assert state.agent_context.last_routing_time is not None


@pytest.mark.asyncio
async def test_history_window_drops_oldest(store, registry):
    router = IntentRouter(store, registry, config=RouterConfig(max_context_history=3, routing_history_snapshot=2))

    for i in range(5):
        context = await router.get_context("conv-1", "user-1")
        text = f"抽纸消耗{i + 1}包"
        decision = await router.decide(text, context)
        await router.update_context(context, decision, text)

    state = await store.load("conv-1")
    assert [t.user_input for t in state.history] == ["抽纸消耗3包", "抽纸消耗4包", "抽纸消耗5包"]
    assert len(state.agent_context.routing_history) == 2

    context = await router.get_context("conv-1", "user-1")
    assert len(context.session_history) == 3


@pytest.mark.asyncio
async def test_complete_turn_records_response(store, registry):
    router = IntentRouter(store, registry)
    context = await router.get_context("conv-1", "user-1")
    decision = await router.decide(SCENARIO_A_INPUT, context)
    turn = await router.update_context(context, decision, SCENARIO_A_INPUT)

    assert await router.complete_turn("conv-1", turn.turn_id, "已记录")
    assert not await router.complete_turn("conv-1", "turn-missing", "x")
    assert not await router.complete_turn("conv-unknown", turn.turn_id, "x")

    state = await store.load("conv-1")
    assert state.history[-1].agent_response == "已记录"
    assert state.history[-1].turn_id == turn.turn_id


@pytest.mark.asyncio
async def test_prompt_includes_recent_turns(store, registry):
    generator = FakeTextGenerator(classification_reply("inventory", 0.9))
    router = IntentRouter(store, registry, generator=generator)
    context = empty_context()
    context.session_history.extend(
        ConversationTurn(user_input=f"输入{i}", agent_response=f"回复{i}", agent_id="inventory")
        for i in range(5)
    )
    context.current_context.extra.update({"user_input": "hidden", "household": "3 people"})

    await router.decide("还剩多少", context)

    _, user_prompt = generator.calls[0]
    assert "输入4" in user_prompt and "回复2" in user_prompt
    assert "输入1" not in user_prompt
    assert "household: 3 people" in user_prompt
    assert "hidden" not in user_prompt


@pytest.mark.asyncio
async def test_store_failures_are_not_fatal(registry):
    router = IntentRouter(BrokenStore(), registry)

    context = await router.get_context("conv-1", "user-1")
    assert context.session_history == []

    decision = await router.decide(SCENARIO_A_INPUT, context)
    turn = await router.update_context(context, decision, SCENARIO_A_INPUT)

    assert turn.agent_id == "inventory"
    assert not await router.complete_turn("conv-1", turn.turn_id, "x")
    assert not await router.clear_context("conv-1")


@pytest.mark.asyncio
async def test_clear_context_and_stats(store, registry):
    router = IntentRouter(store, registry)
    for conversation_id, text in (("conv-1", SCENARIO_A_INPUT), ("conv-2", "生成本月财务报告")):
        context = await router.get_context(conversation_id, "user-1")
        decision = await router.decide(text, context)
        await router.update_context(context, decision, text)

    stats = router.routing_stats()
    assert stats["total_decisions"] == 2
    assert stats["agent_distribution"] == {"inventory": 1, "finance": 1}
    assert 0.0 < stats["average_confidence"] <= 1.0

    assert await router.clear_context("conv-1")
    assert await store.load("conv-1") is None
    assert not await router.clear_context("conv-1")
    assert router.routing_stats()["conversations"] == 1
