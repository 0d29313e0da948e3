"""
LLM-Backed Agent Handler

Default handler used when no domain implementation is plugged in: answers
the user with the text generator under a per-agent system instruction.
"""

import logging
import time

from intentflow.llm.generator import TextGenerator
from intentflow.registry.agent import AgentHandler, AgentInvocationResult, AgentProfile

logger = logging.getLogger(__name__)


def build_agent_instruction(profile: AgentProfile) -> str:
    capabilities = ", ".join(profile.capabilities) if profile.capabilities else "general assistance"
    return (
        f"You are the {profile.name or profile.agent_type} of a household assistant.\n"
        f"Responsibility: {profile.description or profile.agent_type}\n"
        f"Supported operations: {capabilities}\n\n"
        "Answer the user's request concisely in the language they used. "
        "If the request needs data you do not have, say what is missing."
    )


class LLMAgentHandler(AgentHandler):
    """Answers requests for one agent type through a TextGenerator."""

    def __init__(self, profile: AgentProfile, generator: TextGenerator):
        self._profile = profile
        self._generator = generator
        self._instruction = build_agent_instruction(profile)

    @property
    def agent_type(self) -> str:
        return self._profile.agent_type

    async def invoke(self, user_input: str, thread_key: str) -> AgentInvocationResult:
        start = time.perf_counter()
        try:
            text = await self._generator.generate(self._instruction, user_input)
        except Exception as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.warning(f"{self.agent_type} agent generation failed on {thread_key}: {e}")
            return AgentInvocationResult(
                success=False,
                duration_ms=duration_ms,
                error=str(e),
                metadata={"agent_type": self.agent_type},
            )

        duration_ms = int((time.perf_counter() - start) * 1000)
        return AgentInvocationResult(
            success=True,
            response_text=text.strip(),
            duration_ms=duration_ms,
            metadata={"agent_type": self.agent_type},
        )
