"""
Workflow Event Models

Events emitted by the workflow engine through an injected EventSink, so that
every side effect of a transition is observable:
- Execution lifecycle (started, retrying, completed, failed, timeout)
- State-machine transitions and agent invocations

Events are immutable records correlated by conversation_id and execution_id.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    """
    Categories of workflow events.

    Grouped by concern:
    - execution.* - Execution lifecycle events
    - flow.* - State-machine transitions and agent invocations
    """
    # Execution Lifecycle
    EXECUTION_STARTED = "execution.started"
    EXECUTION_RETRYING = "execution.retrying"
    EXECUTION_COMPLETED = "execution.completed"
    EXECUTION_FAILED = "execution.failed"
    EXECUTION_TIMEOUT = "execution.timeout"

    # Flow Events
    FLOW_TRANSITION = "flow.transition"
    FLOW_AGENT_STARTED = "flow.agent.started"
    FLOW_AGENT_COMPLETED = "flow.agent.completed"
    FLOW_AGENT_FAILED = "flow.agent.failed"


class EventSeverity(str, Enum):
    """Severity levels for events."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class WorkflowEvent(BaseModel):
    """One observable step of a workflow execution."""

    model_config = ConfigDict(frozen=True)

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    event_type: EventType = Field(
        ...,
        description="Type/category of the event"
    )
    severity: EventSeverity = Field(
        default=EventSeverity.INFO,
        description="Event severity"
    )

    # Timing
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred"
    )

    # Correlation
    execution_id: str = Field(
        ...,
        description="Identifier of the execute/stream call"
    )
    conversation_id: str = Field(
        ...,
        description="Conversation the execution belongs to"
    )

    # Flow position
    node: str | None = Field(
        default=None,
        description="State-machine node the event refers to"
    )
    step_count: int = Field(
        default=0,
        description="Step count when the event was emitted"
    )

    # Payload
    message: str = Field(
        default="",
        description="Human-readable summary"
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Event-specific details"
    )
