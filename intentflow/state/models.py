"""
Conversation and Routing Models

Pydantic models shared by the router, the workflow engine and the
conversation stores:

- RoutingDecision: immutable per-input routing choice
- ConversationTurn: immutable record of one input and its response
- AgentContext: typed per-conversation context (routing snapshots, preferences, flags)
- ConversationState: persisted per-conversation state with a bounded history
- RoutingContext: the router's projection of ConversationState for one decision
"""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _drop_empty(entities: dict[str, Any] | None) -> dict[str, Any]:
    if not entities:
        return {}
    return {k: v for k, v in entities.items() if v is not None and v != ""}


# =============================================================================
# Routing Decision
# =============================================================================

class RoutingDecision(BaseModel):
    """
    The router's choice of target agent for one input.

    Immutable; adjustments go through `adjusted`, which re-validates so the
    confidence stays clamped to [0, 1].
    """

    model_config = ConfigDict(frozen=True)

    target_agent_type: str = Field(..., description="Agent type that should handle the input")
    confidence: float = Field(default=0.5, description="Routing confidence, clamped to [0, 1]")
    reasoning: str = Field(default="", description="Why this target was chosen")
    extracted_entities: dict[str, Any] = Field(
        default_factory=dict,
        description="Detected entities; undetected keys are absent",
    )
    suggested_actions: list[str] = Field(default_factory=list)
    contextual_info: str = Field(default="")

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            value = float(value)
        except (TypeError, ValueError):
            return 0.5
        if value != value:  # NaN
            return 0.0
        return max(0.0, min(1.0, value))

    @field_validator("extracted_entities", mode="before")
    @classmethod
    def _strip_entities(cls, value: Any) -> dict[str, Any]:
        return _drop_empty(value)

    def adjusted(self, **changes: Any) -> "RoutingDecision":
        """Return a validated copy with `changes` applied."""
        return type(self).model_validate({**self.model_dump(), **changes})

    def with_note(self, note: str, **changes: Any) -> "RoutingDecision":
        """Return a copy with `note` appended to the reasoning."""
        reasoning = f"{self.reasoning} ({note})" if self.reasoning else note
        return self.adjusted(reasoning=reasoning, **changes)


# =============================================================================
# Conversation
# =============================================================================

class ConversationTurn(BaseModel):
    """One user input and the agent response it produced."""

    model_config = ConfigDict(frozen=True)

    turn_id: str = Field(default_factory=lambda: f"turn-{uuid4()}")
    user_input: str
    agent_response: str = ""
    intent: str = ""
    entities: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)
    agent_id: str = ""

    def with_response(self, agent_response: str) -> "ConversationTurn":
        """Copy of this turn carrying the final response text."""
        return self.model_copy(update={"agent_response": agent_response})


class AgentContext(BaseModel):
    """
    Typed per-conversation context.

    Named fields for everything the router reads or writes; `extra` holds
    genuinely unstructured data supplied by callers.
    """

    routing_history: list[RoutingDecision] = Field(
        default_factory=list,
        description="Most recent routing decisions, oldest first",
    )
    last_routing_decision: RoutingDecision | None = None
    last_routing_time: datetime | None = None
    user_preferences: dict[str, str] = Field(default_factory=dict)
    has_photo: bool = False
    has_file: bool = False
    extra: dict[str, Any] = Field(default_factory=dict)

    def prompt_items(self) -> list[tuple[str, str]]:
        """Key/value pairs worth showing to the classifier."""
        items: list[tuple[str, str]] = []
        if self.last_routing_decision is not None:
            items.append(("last_agent", self.last_routing_decision.target_agent_type))
        if self.has_photo:
            items.append(("has_photo", "true"))
        if self.has_file:
            items.append(("has_file", "true"))
        for key, value in self.extra.items():
            if key in ("user_input", "input"):
                continue
            items.append((key, str(value)))
        return items


class ConversationState(BaseModel):
    """Persisted state of one conversation."""

    conversation_id: str
    user_id: str
    current_intent: str = ""
    entities: dict[str, Any] = Field(default_factory=dict)
    history: list[ConversationTurn] = Field(default_factory=list)
    last_activity: datetime = Field(default_factory=utc_now)
    agent_context: AgentContext = Field(default_factory=AgentContext)

    def append_turn(self, turn: ConversationTurn, window: int) -> None:
        """Append `turn` and drop the oldest turns beyond `window`."""
        self.history.append(turn)
        if len(self.history) > window:
            self.history = self.history[-window:]

    def replace_turn(self, turn: ConversationTurn) -> bool:
        """Swap in `turn` for the stored turn with the same id."""
        for index, existing in enumerate(self.history):
            if existing.turn_id == turn.turn_id:
                self.history[index] = turn
                return True
        return False


class RoutingContext(BaseModel):
    """What the router knows about a conversation when deciding."""

    conversation_id: str
    user_id: str
    session_history: list[ConversationTurn] = Field(default_factory=list)
    current_context: AgentContext = Field(default_factory=AgentContext)
    user_preferences: dict[str, str] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)
