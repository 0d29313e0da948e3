# Conversation State
# Routing decisions, turns and the per-conversation context persisted between requests

from intentflow.state.models import (
    AgentContext,
    ConversationState,
    ConversationTurn,
    RoutingContext,
    RoutingDecision,
    utc_now,
)

__all__ = [
    "AgentContext",
    "ConversationState",
    "ConversationTurn",
    "RoutingContext",
    "RoutingDecision",
    "utc_now",
]
