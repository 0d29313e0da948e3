"""
Workflow State Definition

The state machine's nodes, the transient per-execution state and the records
the engine hands back to callers.

Nodes:
    __start__ -> routing -> <agent type> | error -> formatting -> __end__

Agent nodes are named by their agent type; only the control nodes below are
fixed.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from intentflow.registry.agent import AgentInvocationResult
from intentflow.state.models import RoutingDecision, utc_now


class ControlNode(str, Enum):
    """Fixed nodes of the workflow state machine."""
    START = "__start__"
    ROUTING = "routing"
    ERROR = "error"
    FORMATTING = "formatting"
    END = "__end__"


# =============================================================================
# Execution State
# =============================================================================

class WorkflowMetadata(BaseModel):
    """Bookkeeping for one execution."""

    start_time: datetime = Field(default_factory=utc_now)
    step_count: int = Field(default=0, description="Transitions taken so far")
    errors: list[str] = Field(default_factory=list)


class WorkflowState(BaseModel):
    """
    State flowing through the state machine.

    Created at the start of an execution and discarded at the end; only the
    conversation context derived from it is persisted.
    """

    # Input
    user_input: str
    conversation_id: str
    user_id: str

    # Routing
    routing_decision: RoutingDecision | None = None
    current_agent_type: str | None = None
    turn_id: str | None = Field(
        default=None,
        description="Stored conversation turn created by routing",
    )

    # Results
    per_agent_result: dict[str, AgentInvocationResult] = Field(default_factory=dict)
    final_response_text: str = ""

    # Flow control
    current_node: str = ControlNode.START.value
    metadata: WorkflowMetadata = Field(default_factory=WorkflowMetadata)

    def apply(self, update: dict[str, Any], node: str) -> "WorkflowState":
        """
        New state with a transition's partial update applied.

        `per_agent_result` entries are merged and `errors` are appended;
        every other key replaces the current value. The step count grows
        by exactly one.
        """
        changes = {k: v for k, v in update.items() if k not in ("per_agent_result", "errors")}

        per_agent_result = dict(self.per_agent_result)
        per_agent_result.update(update.get("per_agent_result", {}))

        metadata = self.metadata.model_copy(
            update={
                "step_count": self.metadata.step_count + 1,
                "errors": self.metadata.errors + list(update.get("errors", [])),
            }
        )
        return self.model_copy(
            update={
                **changes,
                "per_agent_result": per_agent_result,
                "current_node": node,
                "metadata": metadata,
            }
        )


# =============================================================================
# Results
# =============================================================================

class WorkflowResult(BaseModel):
    """Terminal outcome of an execution."""

    success: bool
    response_text: str
    conversation_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class WorkflowUpdate(BaseModel):
    """
    One item of `WorkflowEngine.stream`.

    Every transition yields an update; the final item carries the result.
    """

    node: str = Field(..., description="Node that just ran")
    next_node: str | None = Field(default=None, description="Node the machine moves to")
    step_count: int = 0
    update: dict[str, Any] = Field(
        default_factory=dict,
        description="JSON-ready partial state written by the node",
    )
    result: WorkflowResult | None = None

    @property
    def is_final(self) -> bool:
        return self.result is not None
