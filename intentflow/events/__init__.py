# Workflow Events
# Observable record of state-machine transitions, delivered through an injected sink

from intentflow.events.models import (
    EventSeverity,
    EventType,
    WorkflowEvent,
)
from intentflow.events.sink import (
    EventSink,
    LoggingEventSink,
    NullEventSink,
    RecordingEventSink,
    emit_safely,
)

__all__ = [
    # Event Models
    "EventSeverity",
    "EventType",
    "WorkflowEvent",
    # Sinks
    "EventSink",
    "LoggingEventSink",
    "NullEventSink",
    "RecordingEventSink",
    "emit_safely",
]
