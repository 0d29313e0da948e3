"""
Event Sinks

The workflow engine reports progress to an injected EventSink instead of a
global emitter. Sinks must not raise into the engine; `emit_safely` guards
each delivery.
"""

import asyncio
import logging
from abc import ABC, abstractmethod

from intentflow.events.models import EventType, WorkflowEvent

logger = logging.getLogger(__name__)


class EventSink(ABC):
    """Receives workflow events."""

    @abstractmethod
    async def emit(self, event: WorkflowEvent) -> None:
        ...


class NullEventSink(EventSink):
    """Discards every event."""

    async def emit(self, event: WorkflowEvent) -> None:
        return None


class LoggingEventSink(EventSink):
    """Writes events to the module logger at DEBUG level."""

    async def emit(self, event: WorkflowEvent) -> None:
        logger.debug(
            f"[{event.conversation_id}] {event.event_type.value} "
            f"node={event.node} step={event.step_count} {event.message}"
        )


class RecordingEventSink(EventSink):
    """Keeps every event in memory, in emission order."""

    def __init__(self):
        self.events: list[WorkflowEvent] = []
        self._lock = asyncio.Lock()

    async def emit(self, event: WorkflowEvent) -> None:
        async with self._lock:
            self.events.append(event)

    def of_type(self, event_type: EventType) -> list[WorkflowEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


async def emit_safely(sink: EventSink, event: WorkflowEvent) -> None:
    """Deliver `event`, logging instead of raising on sink failure."""
    try:
        await sink.emit(event)
    except Exception as e:
        logger.warning(f"Event sink {type(sink).__name__} failed on {event.event_type.value}: {e}")
