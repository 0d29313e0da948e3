"""Fakes and canned handlers shared by the IntentFlow tests."""

import asyncio
import json
from typing import Any, Callable

from intentflow.llm.generator import TextGenerator
from intentflow.registry import AgentInvocationResult, FunctionAgentHandler


SCENARIO_A_INPUT = "抽纸消耗1包"


class FakeTextGenerator(TextGenerator):
    """
    Replays scripted replies.

    Each reply is either a string, an exception instance (raised), or a
    callable `(system_instruction, user_prompt) -> str`.
    """

    def __init__(self, *replies: Any):
        self._replies = list(replies)
        self.calls: list[tuple[str, str]] = []

    async def generate(self, system_instruction: str, user_prompt: str) -> str:
        self.calls.append((system_instruction, user_prompt))
        if not self._replies:
            raise AssertionError("FakeTextGenerator ran out of replies")
        reply = self._replies.pop(0) if len(self._replies) > 1 else self._replies[0]
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(system_instruction, user_prompt)
        return reply


def classification_reply(target: str, confidence: Any = 0.9, **extra: Any) -> str:
    """A model-style reply wrapping a classification JSON object in prose."""
    payload = {"targetAgent": target, "confidence": confidence, "reasoning": f"looks like {target}"}
    payload.update(extra)
    return f"Here is my decision:\n```json\n{json.dumps(payload, ensure_ascii=False)}\n```"


class FakeRedis:
    """In-process stand-in for redis.asyncio.Redis with decode_responses=False."""

    def __init__(self):
        self.data: dict[str, bytes] = {}
        self.ttls: dict[str, int | None] = {}
        self.closed = False

    async def get(self, key: str) -> bytes | None:
        return self.data.get(key)

    async def set(self, key: str, value: str | bytes, ex: int | None = None) -> bool:
        self.data[key] = value.encode("utf-8") if isinstance(value, str) else value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def aclose(self) -> None:
        self.closed = True


def static_handler(text: str) -> FunctionAgentHandler:
    async def respond(user_input: str, thread_key: str) -> str:
        return text

    return FunctionAgentHandler(respond)


def scripted_handler(*outcomes: Any) -> tuple[FunctionAgentHandler, list[str]]:
    """
    Handler returning (or raising) `outcomes` in order; the last one repeats.

    Returns the handler and the list of thread keys it was called with.
    """
    remaining = list(outcomes)
    calls: list[str] = []

    async def respond(user_input: str, thread_key: str) -> Any:
        calls.append(thread_key)
        outcome = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    return FunctionAgentHandler(respond), calls


def failure(error: str) -> AgentInvocationResult:
    return AgentInvocationResult(success=False, error=error)


def sleeping_handler(delay: float, text: str = "done", tracker: Callable[[int], None] | None = None):
    active = 0

    async def respond(user_input: str, thread_key: str) -> str:
        nonlocal active
        active += 1
        if tracker is not None:
            tracker(active)
        try:
            await asyncio.sleep(delay)
        finally:
            active -= 1
        return text

    return FunctionAgentHandler(respond)


