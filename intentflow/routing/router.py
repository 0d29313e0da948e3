"""
Intent Router

Turns a free-text input plus conversation context into a RoutingDecision.

Decision path:
1. Pattern-based entity extraction
2. Classification by the text generator (when configured), parsing the first
   JSON object in the reply; an unparseable reply falls back to the
   deterministic rule classifier
3. Unregistered target -> fallback type, confidence reduced by 0.2 (floor 0.3)
4. Below threshold -> bounded context boost, then fallback substitution
5. Any exception -> fallback type at confidence 0.2

`decide` never raises. Context is loaded from and persisted to the injected
ConversationStateStore; store failures are logged and never fatal.
"""

import logging
from collections import OrderedDict, deque
from typing import Any

from intentflow.config import RouterConfig
from intentflow.errors import ClassificationParseError
from intentflow.llm.generator import TextGenerator
from intentflow.registry.registry import AgentRegistry
from intentflow.routing.entities import EntityExtractor
from intentflow.routing.parsing import parse_classification_reply
from intentflow.routing.prompts import (
    RECENT_TURNS_IN_PROMPT,
    build_system_instruction,
    build_user_prompt,
)
from intentflow.routing.rules import RuleBasedClassifier
from intentflow.state.models import (
    ConversationState,
    ConversationTurn,
    RoutingContext,
    RoutingDecision,
    utc_now,
)
from intentflow.storage.ports import ConversationStateStore

logger = logging.getLogger(__name__)


UNKNOWN_TARGET_PENALTY = 0.2
UNKNOWN_TARGET_FLOOR = 0.3
HISTORY_BOOST = 0.1
ENTITY_BOOST = 0.1
ENTITY_BOOST_MIN_KEYS = 2
MAX_CONTEXT_BOOST = 0.3
FATAL_CONFIDENCE = 0.2
DECISION_CACHE_SIZE = 20


class IntentRouter:
    """
    Routes inputs to agent types.

    Keeps a small in-memory cache of recent decisions per conversation, used
    only for the confidence boost when persisted history is unavailable.
    """

    def __init__(
        self,
        store: ConversationStateStore,
        registry: AgentRegistry,
        generator: TextGenerator | None = None,
        config: RouterConfig | None = None,
        classifier: RuleBasedClassifier | None = None,
        extractor: EntityExtractor | None = None,
    ):
        """
        Initialize the router.

        Args:
            store: Conversation state persistence
            registry: Registered agent handlers; unknown targets fall back
            generator: Text generator for classification (None = rules only)
            config: Router configuration
            classifier: Deterministic classifier (defaults to the built-in rule table)
            extractor: Entity extractor
        """
        self._store = store
        self._registry = registry
        self._generator = generator
        self._config = config or RouterConfig()
        self._classifier = classifier or RuleBasedClassifier(
            profiles=registry.get_profile,
            fallback_agent_type=self._config.fallback_agent_type,
        )
        self._extractor = extractor or EntityExtractor()

        # conversation_id -> recent decisions, least recently used first
        # (best effort, never the source of truth)
        self._decisions: OrderedDict[str, deque[RoutingDecision]] = OrderedDict()

    @property
    def config(self) -> RouterConfig:
        return self._config

    @property
    def fallback_agent_type(self) -> str:
        return self._config.fallback_agent_type

    # =========================================================================
    # Decision
    # =========================================================================

    async def decide(self, user_input: str, context: RoutingContext) -> RoutingDecision:
        """
        Produce a routing decision. Never raises.

        Args:
            user_input: Raw user text
            context: Conversation context from `get_context`

        Returns:
            RoutingDecision with confidence in [0, 1]
        """
        try:
            entities = self._extract_entities(user_input)
            decision = await self._classify(user_input, context, entities)
            decision = self._resolve_target(decision)
            decision = self._apply_confidence_gate(decision, context)

            self.remember_decision(context.conversation_id, decision)
            logger.info(
                f"Routed conversation {context.conversation_id} to {decision.target_agent_type} "
                f"(confidence={decision.confidence:.2f})"
            )
            return decision

        except Exception as e:
            logger.error(f"Routing failed for conversation {context.conversation_id}: {e}", exc_info=True)
            return RoutingDecision(
                target_agent_type=self._config.fallback_agent_type,
                confidence=FATAL_CONFIDENCE,
                reasoning=f"Routing error, using fallback agent: {e}",
                contextual_info="fatal",
            )

    def _extract_entities(self, user_input: str) -> dict[str, Any]:
        if not self._config.enable_entity_extraction:
            return {}
        return self._extractor.extract(user_input)

    async def _classify(
        self,
        user_input: str,
        context: RoutingContext,
        entities: dict[str, Any],
    ) -> RoutingDecision:
        if self._generator is None:
            return self._classifier.classify(user_input, entities, context.current_context)

        profiles = self._registry.profiles(registered_only=True) or self._registry.profiles()
        reply = await self._generator.generate(
            build_system_instruction(profiles),
            build_user_prompt(user_input, context),
        )

        try:
            payload = parse_classification_reply(reply)
        except ClassificationParseError as e:
            logger.warning(f"Classification reply unusable, using rule classifier: {e}")
            return self._classifier.classify(user_input, entities, context.current_context)

        merged_entities = {**entities, **payload.extracted_entities}
        return RoutingDecision(
            target_agent_type=payload.target_agent_type,
            confidence=payload.confidence,
            reasoning=payload.reasoning,
            extracted_entities=merged_entities,
            suggested_actions=payload.suggested_actions,
            contextual_info=payload.contextual_info,
        )

    def _resolve_target(self, decision: RoutingDecision) -> RoutingDecision:
        """Replace an unregistered target with the fallback type."""
        if self._registry.has_handler(decision.target_agent_type):
            return decision

        fallback = self._config.fallback_agent_type
        logger.warning(
            f"Unknown target agent '{decision.target_agent_type}', falling back to '{fallback}'"
        )
        return decision.with_note(
            f"agent '{decision.target_agent_type}' is not registered, using fallback '{fallback}'",
            target_agent_type=fallback,
            confidence=max(UNKNOWN_TARGET_FLOOR, decision.confidence - UNKNOWN_TARGET_PENALTY),
        )

    def _apply_confidence_gate(
        self,
        decision: RoutingDecision,
        context: RoutingContext,
    ) -> RoutingDecision:
        threshold = self._config.confidence_threshold
        if decision.confidence >= threshold:
            return decision

        if self._config.enable_context_learning:
            boost = self.context_boost(decision, context)
            if boost > 0:
                decision = decision.with_note(
                    f"context boost +{boost:.1f}",
                    confidence=decision.confidence + boost,
                )

        if decision.confidence < threshold:
            fallback = self._config.fallback_agent_type
            logger.warning(
                f"Low confidence {decision.confidence:.2f} for '{decision.target_agent_type}', "
                f"using fallback '{fallback}'"
            )
            decision = decision.with_note(
                f"confidence below {threshold}, using fallback '{fallback}'",
                target_agent_type=fallback,
            )
        return decision

    def remember_decision(self, conversation_id: str, decision: RoutingDecision) -> None:
        """Cache a decision, evicting the least recently used conversation when full."""
        cached = self._decisions.get(conversation_id)
        if cached is None:
            cached = deque(maxlen=DECISION_CACHE_SIZE)
            self._decisions[conversation_id] = cached
        else:
            self._decisions.move_to_end(conversation_id)
        cached.append(decision)

        while len(self._decisions) > self._config.max_cached_conversations:
            evicted, _ = self._decisions.popitem(last=False)
            logger.debug(f"Evicted cached routing decisions for {evicted}")

    def context_boost(self, decision: RoutingDecision, context: RoutingContext) -> float:
        """
        Bounded boost for a low-confidence decision.

        +0.1 when one of the last three turns went to the same agent type,
        +0.1 when more than two entities were extracted; capped at 0.3.
        """
        recent_types = [turn.agent_id for turn in context.session_history[-RECENT_TURNS_IN_PROMPT:]]
        if not recent_types:
            cached = list(self._decisions.get(context.conversation_id, ()))
            recent_types = [d.target_agent_type for d in cached[-RECENT_TURNS_IN_PROMPT:]]

        boost = 0.0
        if decision.target_agent_type in recent_types:
            boost += HISTORY_BOOST
        if len(decision.extracted_entities) > ENTITY_BOOST_MIN_KEYS:
            boost += ENTITY_BOOST
        return min(boost, MAX_CONTEXT_BOOST)

    # =========================================================================
    # Context
    # =========================================================================

    async def get_context(self, conversation_id: str, user_id: str) -> RoutingContext:
        """Load the conversation and project it into a RoutingContext."""
        try:
            state = await self._store.load(conversation_id)
        except Exception as e:
            logger.warning(f"Failed to load context for {conversation_id}, starting empty: {e}")
            state = None

        if state is None:
            return RoutingContext(conversation_id=conversation_id, user_id=user_id)

        return RoutingContext(
            conversation_id=conversation_id,
            user_id=user_id,
            session_history=list(state.history),
            current_context=state.agent_context,
            user_preferences=dict(state.agent_context.user_preferences),
        )

    async def update_context(
        self,
        context: RoutingContext,
        decision: RoutingDecision,
        user_input: str,
    ) -> ConversationTurn:
        """
        Append a turn for `decision` and persist the whole conversation.

        Returns:
            The appended turn (its response is filled in by `complete_turn`)
        """
        turn = ConversationTurn(
            user_input=user_input,
            intent=f"{decision.target_agent_type}_request",
            entities=dict(decision.extracted_entities),
            agent_id=decision.target_agent_type,
        )

        now = utc_now()
        snapshot_size = self._config.routing_history_snapshot
        routing_history = (list(context.current_context.routing_history) + [decision])
        routing_history = routing_history[-snapshot_size:] if snapshot_size else []

        agent_context = context.current_context.model_copy(
            update={
                "routing_history": routing_history,
                "last_routing_decision": decision,
                "last_routing_time": now,
                "user_preferences": {
                    **context.current_context.user_preferences,
                    **context.user_preferences,
                },
            }
        )

        state = ConversationState(
            conversation_id=context.conversation_id,
            user_id=context.user_id,
            current_intent=turn.intent,
            entities=dict(decision.extracted_entities),
            history=list(context.session_history),
            last_activity=now,
            agent_context=agent_context,
        )
        state.append_turn(turn, self._config.max_context_history)

        try:
            await self._store.save(context.conversation_id, state)
        except Exception as e:
            logger.error(f"Failed to persist context for {context.conversation_id}: {e}")

        return turn

    async def complete_turn(self, conversation_id: str, turn_id: str, response_text: str) -> bool:
        """Record the final response on a stored turn."""
        try:
            state = await self._store.load(conversation_id)
            if state is None:
                return False

            for turn in state.history:
                if turn.turn_id == turn_id:
                    state.replace_turn(turn.with_response(response_text))
                    break
            else:
                return False

            state.last_activity = utc_now()
            await self._store.save(conversation_id, state)
            return True
        except Exception as e:
            logger.error(f"Failed to record response for {conversation_id}: {e}")
            return False

    async def clear_context(self, conversation_id: str) -> bool:
        """Forget a conversation: stored state and cached decisions."""
        self._decisions.pop(conversation_id, None)
        try:
            removed = await self._store.delete(conversation_id)
        except Exception as e:
            logger.error(f"Failed to clear context for {conversation_id}: {e}")
            return False
        logger.info(f"Cleared context for conversation {conversation_id}")
        return removed

    def routing_stats(self) -> dict[str, Any]:
        """Aggregate view of cached decisions."""
        decisions = [d for cached in self._decisions.values() for d in cached]
        distribution: dict[str, int] = {}
        for decision in decisions:
            distribution[decision.target_agent_type] = distribution.get(decision.target_agent_type, 0) + 1

        average = sum(d.confidence for d in decisions) / len(decisions) if decisions else 0.0
        return {
            "registered_agents": self._registry.agent_types,
            "conversations": len(self._decisions),
            "total_decisions": len(decisions),
            "average_confidence": round(average, 4),
            "agent_distribution": distribution,
        }
