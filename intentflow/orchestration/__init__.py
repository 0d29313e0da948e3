"""
Workflow Orchestration Module

Runs each request through an explicit state machine:

    __start__ -> routing -> <agent type> | error -> formatting -> __end__

Key components:
- WorkflowEngine: Drives the machine with a step limit, a whole-call timeout
  and per-conversation serialization
- WorkflowTransitions: Node implementations, including agent retry with
  linear backoff
- WorkflowState / WorkflowResult / WorkflowUpdate: Transient state, terminal
  result and streamed progress items
"""

from intentflow.orchestration.engine import WorkflowEngine, new_conversation_id
from intentflow.orchestration.state import (
    ControlNode,
    WorkflowMetadata,
    WorkflowResult,
    WorkflowState,
    WorkflowUpdate,
)
from intentflow.orchestration.transitions import (
    ABORTED_TEXT,
    APOLOGY_TEXT,
    DEFAULT_COMPLETION_TEXT,
    NO_CONTENT_TEXT,
    Transition,
    WorkflowTransitions,
    format_response,
)

__all__ = [
    # Engine
    "WorkflowEngine",
    "new_conversation_id",
    # State
    "ControlNode",
    "WorkflowMetadata",
    "WorkflowResult",
    "WorkflowState",
    "WorkflowUpdate",
    # Transitions
    "ABORTED_TEXT",
    "APOLOGY_TEXT",
    "DEFAULT_COMPLETION_TEXT",
    "NO_CONTENT_TEXT",
    "Transition",
    "WorkflowTransitions",
    "format_response",
]
