"""
In-Memory Storage Adapter

Conversation store for development and testing. Uses an asyncio lock for
concurrent async safety; everything is lost on restart.

States are deep-copied on the way in and out so callers never share mutable
state with the store.
"""

import asyncio

from intentflow.state.models import ConversationState
from intentflow.storage.ports import ConversationStateStore


class InMemoryConversationStore(ConversationStateStore):
    """
    In-memory conversation storage.

    Uses dict with asyncio.Lock for thread-safety.
    """

    def __init__(self):
        self._states: dict[str, ConversationState] = {}
        self._lock = asyncio.Lock()

    async def load(self, conversation_id: str) -> ConversationState | None:
        async with self._lock:
            state = self._states.get(conversation_id)
            return state.model_copy(deep=True) if state is not None else None

    async def save(self, conversation_id: str, state: ConversationState) -> None:
        async with self._lock:
            self._states[conversation_id] = state.model_copy(deep=True)

    async def delete(self, conversation_id: str) -> bool:
        async with self._lock:
            return self._states.pop(conversation_id, None) is not None

    def count(self) -> int:
        return len(self._states)
