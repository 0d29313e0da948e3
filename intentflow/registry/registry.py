"""
Agent Registry

In-memory mapping from agent type to the handler that serves it. The set of
registered types drives both the router (unknown targets fall back) and the
workflow engine (one state per registered type).

Profiles for the built-in agent types are always known, so the router can
describe them to the classifier even before handlers are registered.
"""

import asyncio
import logging
from typing import Iterable

from intentflow.errors import AgentRegistrationError, UnknownAgentTypeError
from intentflow.registry.agent import (
    DEFAULT_AGENT_PROFILES,
    AgentHandler,
    AgentProfile,
)

logger = logging.getLogger(__name__)


# Workflow control node names; agent types may not shadow them.
RESERVED_AGENT_TYPES = frozenset({"__start__", "__end__", "routing", "formatting", "error"})


class AgentRegistry:
    """
    Registered agent handlers keyed by agent type.

    Mutations are serialized with an asyncio lock; lookups are synchronous
    reads of the current mapping.
    """

    def __init__(self, profiles: Iterable[AgentProfile] | None = None):
        # Primary index: agent_type -> handler
        self._handlers: dict[str, AgentHandler] = {}

        # Known profiles, including types without a handler
        self._profiles: dict[str, AgentProfile] = dict(DEFAULT_AGENT_PROFILES)
        for profile in profiles or ():
            self._profiles[profile.agent_type] = profile

        self._lock = asyncio.Lock()

    async def register(
        self,
        agent_type: str,
        handler: AgentHandler,
        profile: AgentProfile | None = None,
        replace: bool = False,
    ) -> None:
        """
        Register `handler` for `agent_type`.

        Raises:
            AgentRegistrationError: If the type is reserved, or already
                registered and `replace` is False
        """
        if not agent_type or agent_type in RESERVED_AGENT_TYPES:
            raise AgentRegistrationError(f"Agent type '{agent_type}' is reserved")

        async with self._lock:
            if agent_type in self._handlers and not replace:
                raise AgentRegistrationError(f"Agent type '{agent_type}' is already registered")
            self._handlers[agent_type] = handler
            if profile is not None:
                self._profiles[agent_type] = profile
            elif agent_type not in self._profiles:
                self._profiles[agent_type] = AgentProfile(agent_type=agent_type, name=agent_type)

        logger.info(f"Agent registered: {agent_type} ({type(handler).__name__})")

    async def unregister(self, agent_type: str) -> bool:
        async with self._lock:
            removed = self._handlers.pop(agent_type, None)
        if removed is not None:
            logger.info(f"Agent unregistered: {agent_type}")
        return removed is not None

    # =========================================================================
    # Lookups
    # =========================================================================

    def has_handler(self, agent_type: str) -> bool:
        return agent_type in self._handlers

    def get_handler(self, agent_type: str) -> AgentHandler:
        handler = self._handlers.get(agent_type)
        if handler is None:
            raise UnknownAgentTypeError(agent_type)
        return handler

    def get_profile(self, agent_type: str) -> AgentProfile | None:
        return self._profiles.get(agent_type)

    def profiles(self, registered_only: bool = False) -> list[AgentProfile]:
        """Known profiles in registration order."""
        if registered_only:
            return [self._profiles[t] for t in self._handlers if t in self._profiles]
        return list(self._profiles.values())

    @property
    def agent_types(self) -> list[str]:
        return list(self._handlers)

    @property
    def agent_count(self) -> int:
        return len(self._handlers)
