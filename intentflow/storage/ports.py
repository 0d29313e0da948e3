"""
Storage Port Interfaces

Abstract contract for per-conversation state persistence. The router depends
only on this interface; adapters (in-memory, SQLAlchemy, Redis) implement it
and are injected at construction time.

All persistence APIs are async. `save` overwrites the stored state wholesale;
merging is the caller's responsibility. Implementations must be safe for
concurrent async usage and make the latest successful `save` visible to the
next `load`.
"""

from abc import ABC, abstractmethod

from intentflow.state.models import ConversationState


# =============================================================================
# Conversation State Store
# =============================================================================

class ConversationStateStore(ABC):
    """Durable key-value persistence of ConversationState by conversation id."""

    @abstractmethod
    async def load(self, conversation_id: str) -> ConversationState | None:
        """
        Load a conversation.

        Returns:
            The stored state, or None if the conversation is unknown

        Raises:
            StorageError: If the backend fails
        """
        ...

    @abstractmethod
    async def save(self, conversation_id: str, state: ConversationState) -> None:
        """Store `state`, replacing anything stored under `conversation_id`."""
        ...

    @abstractmethod
    async def delete(self, conversation_id: str) -> bool:
        """
        Delete a conversation.

        Returns:
            True if something was deleted
        """
        ...

    async def close(self) -> None:
        """Release backend connections. Called during shutdown."""
        pass


# =============================================================================
# Exceptions
# =============================================================================

class StorageError(Exception):
    """Base exception for storage errors."""
    pass

