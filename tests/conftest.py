"""Shared fixtures for the IntentFlow test suite."""

import pytest

from intentflow.registry import AgentRegistry
from intentflow.storage import InMemoryConversationStore
from tests.fakes import static_handler


@pytest.fixture
def store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
async def registry() -> AgentRegistry:
    """Registry with a canned handler for every default agent type."""
    registry = AgentRegistry()
    for agent_type in ("inventory", "procurement", "finance", "notification"):
        await registry.register(agent_type, static_handler(f"{agent_type} handled"))
    return registry
