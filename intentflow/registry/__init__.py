# Agent Registry
# Agent profiles, the handler interface and the type -> handler mapping

from intentflow.registry.agent import (
    DEFAULT_AGENT_PROFILES,
    AgentHandler,
    AgentInvocationResult,
    AgentProfile,
    FunctionAgentHandler,
)
from intentflow.registry.llm_handler import LLMAgentHandler
from intentflow.registry.registry import RESERVED_AGENT_TYPES, AgentRegistry

__all__ = [
    "DEFAULT_AGENT_PROFILES",
    "AgentHandler",
    "AgentInvocationResult",
    "AgentProfile",
    "FunctionAgentHandler",
    "LLMAgentHandler",
    "RESERVED_AGENT_TYPES",
    "AgentRegistry",
]
