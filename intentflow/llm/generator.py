"""
Text Generation Capability

`TextGenerator` is the narrow interface the router and the LLM agent handler
depend on: one system instruction plus one user prompt in, free text out.
`LangChainTextGenerator` backs it with any chat model produced by
`create_llm`, initialised lazily on first use.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

from intentflow.llm.factory import LLMConfig, create_llm_from_config

logger = logging.getLogger(__name__)


class TextGenerator(ABC):
    """Generates free text from a system instruction and a user prompt."""

    @abstractmethod
    async def generate(self, system_instruction: str, user_prompt: str) -> str:
        """
        Produce a reply.

        Raises whatever the underlying client raises; callers decide how to
        recover.
        """
        ...


def _message_text(message: Any) -> str:
    """Flatten a chat model reply into plain text."""
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)


class LangChainTextGenerator(TextGenerator):
    """TextGenerator over a LangChain chat model."""

    def __init__(self, config: LLMConfig | None = None, llm: Any = None):
        """
        Args:
            config: Model configuration used when `llm` is not supplied
            llm: Pre-built chat model (anything with `ainvoke`)
        """
        self._config = config or LLMConfig()
        self._llm = llm
        self._init_lock = asyncio.Lock()

    @property
    def model(self) -> str:
        return self._config.model

    async def _get_llm(self) -> Any:
        if self._llm is not None:
            return self._llm

        async with self._init_lock:
            if self._llm is None:
                self._llm = create_llm_from_config(self._config)
                logger.info(f"Initialized text generator with model: {self._config.model}")
        return self._llm

    async def generate(self, system_instruction: str, user_prompt: str) -> str:
        llm = await self._get_llm()
        messages = [
            {"role": "system", "content": system_instruction},
            {"role": "user", "content": user_prompt},
        ]
        reply = await llm.ainvoke(messages)
        return _message_text(reply)
