# Storage Layer
# Pluggable persistence for conversation state
#
# This module provides:
# - Port interface (ABC) defining the conversation store contract
# - In-memory implementation for development/testing
# - SQLAlchemy implementation for production persistence
# - Redis implementation with TTL-based expiry
# - Factory for configuration-based adapter selection

from .ports import (
    ConversationStateStore,
    StorageError,
)
from .memory import InMemoryConversationStore
from .factory import (
    StorageSettings,
    StorageBackend,
    create_store,
    create_store_from_env,
    create_memory_store,
    create_sqlite_store,
    settings_from_env,
)

__all__ = [
    # Ports
    "ConversationStateStore",
    "StorageError",
    # Adapters
    "InMemoryConversationStore",
    # Factory
    "StorageSettings",
    "StorageBackend",
    "create_store",
    "create_store_from_env",
    "create_memory_store",
    "create_sqlite_store",
    "settings_from_env",
]
