"""
Agent Handler Model

Describes the agent types the router can target and the handler interface the
workflow engine invokes for them.

- AgentProfile: what an agent type does (used for prompts and keyword scoring)
- AgentInvocationResult: structured outcome of one handler invocation
- AgentHandler: the capability performing domain work for one agent type
- FunctionAgentHandler: adapts a plain async callable into an AgentHandler
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class AgentProfile(BaseModel):
    """
    Static description of an agent type.

    The router enumerates profiles in the classification instruction and
    counts keyword hits when scoring rule matches.
    """

    # === Identity ===
    agent_type: str = Field(
        ...,
        description="Agent type key (e.g., 'inventory', 'finance')"
    )
    name: str = Field(
        default="",
        description="Human-readable agent name"
    )
    description: str = Field(
        default="",
        description="What the agent handles"
    )

    # === Matching ===
    keywords: list[str] = Field(
        default_factory=list,
        description="Keywords whose presence in the input points at this agent"
    )
    capabilities: list[str] = Field(
        default_factory=list,
        description="Operations the agent supports (e.g., 'consume', 'report')"
    )


DEFAULT_AGENT_PROFILES: dict[str, AgentProfile] = {
    "inventory": AgentProfile(
        agent_type="inventory",
        name="Inventory Agent",
        description="Tracks household items: consumption, additions, stock queries and photo recognition",
        keywords=["库存", "消耗", "添加", "剩余", "照片", "扫描", "物品", "inventory", "stock"],
        capabilities=["consume", "add", "query", "update", "photo_recognition"],
    ),
    "procurement": AgentProfile(
        agent_type="procurement",
        name="Procurement Agent",
        description="Handles purchasing: order imports, purchase planning and restock recommendations",
        keywords=["采购", "购买", "订单", "导入", "建议", "推荐", "补货", "purchase", "order"],
        capabilities=["purchase", "import_orders", "recommend"],
    ),
    "finance": AgentProfile(
        agent_type="finance",
        name="Finance Agent",
        description="Analyses spending, budgets and produces financial reports",
        keywords=["财务", "支出", "分析", "报告", "花费", "消费", "预算", "budget", "spending"],
        capabilities=["analyze", "report", "budget"],
    ),
    "notification": AgentProfile(
        agent_type="notification",
        name="Notification Agent",
        description="Sends reminders and notifications to the user",
        keywords=["通知", "提醒", "告知", "发送", "推送", "消息", "notify", "remind"],
        capabilities=["notify", "remind"],
    ),
}


class AgentInvocationResult(BaseModel):
    """Outcome of one agent handler invocation."""

    success: bool = Field(..., description="Whether the handler completed its work")
    response_text: str = Field(default="", description="User-facing response text")
    duration_ms: int = Field(default=0, ge=0, description="Wall-clock duration in milliseconds")
    error: str | None = Field(default=None, description="Error message on failure")
    metadata: dict[str, Any] = Field(default_factory=dict)


class AgentHandler(ABC):
    """
    Performs domain work for one agent type.

    Ordinary domain failures are reported as `success=False` results. An
    exception escaping `invoke` is treated as a bug by the caller.
    """

    @abstractmethod
    async def invoke(self, user_input: str, thread_key: str) -> AgentInvocationResult:
        ...


AgentFunction = Callable[[str, str], Awaitable["str | AgentInvocationResult"]]


class FunctionAgentHandler(AgentHandler):
    """
    Wraps an async callable `(user_input, thread_key) -> str | AgentInvocationResult`.

    Plain strings become successful results; duration is measured when the
    callable does not report one.
    """

    def __init__(self, func: AgentFunction, name: str | None = None):
        self._func = func
        self.name = name or getattr(func, "__name__", "agent")

    async def invoke(self, user_input: str, thread_key: str) -> AgentInvocationResult:
        start = time.perf_counter()
        outcome = await self._func(user_input, thread_key)
        duration_ms = int((time.perf_counter() - start) * 1000)

        if isinstance(outcome, AgentInvocationResult):
            if outcome.duration_ms == 0:
                return outcome.model_copy(update={"duration_ms": duration_ms})
            return outcome
        return AgentInvocationResult(
            success=True,
            response_text=str(outcome) if outcome is not None else "",
            duration_ms=duration_ms,
        )
