"""
Workflow Transitions

The state machine's transition function: for a node and the current state,
run the node's work and return `Transition(update, next_node)`. The engine
owns step accounting and applies the partial update.

Node kinds:
- routing: load context, decide, persist the routed turn; next is the target
  agent when a handler is registered, else error
- <agent type>: invoke the handler with retry and linear backoff; next is
  formatting
- error: record the routing failure; next is formatting
- formatting: produce the final text and record it on the stored turn; next
  is end
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from intentflow.config import RetryPolicy
from intentflow.errors import AgentInvocationError, UnknownAgentTypeError
from intentflow.events.models import EventSeverity, EventType, WorkflowEvent
from intentflow.events.sink import EventSink, NullEventSink, emit_safely
from intentflow.orchestration.state import ControlNode, WorkflowState
from intentflow.registry.agent import AgentHandler, AgentInvocationResult
from intentflow.registry.registry import AgentRegistry
from intentflow.routing.router import IntentRouter

logger = logging.getLogger(__name__)


# User-facing response texts
APOLOGY_TEXT = "抱歉，处理您的请求时出现了错误。请检查您的输入并重试。"
ABORTED_TEXT = "抱歉，处理您的请求时出现了错误。请稍后重试。"
DEFAULT_COMPLETION_TEXT = "操作已完成。"
AGENT_ERROR_TEMPLATE = "处理过程中出现错误：{error}"
NO_CONTENT_TEXT = "处理完成，但没有生成具体的响应内容。"


@dataclass(frozen=True)
class Transition:
    """Partial state update produced by a node and the node to run next."""

    update: dict[str, Any] = field(default_factory=dict)
    next_node: str = ControlNode.END.value


def format_response(state: WorkflowState) -> str:
    """Final user-facing text for a state that reached formatting."""
    if state.current_node == ControlNode.ERROR.value:
        return APOLOGY_TEXT

    result = state.per_agent_result.get(state.current_agent_type or "")
    if result is None:
        return NO_CONTENT_TEXT
    if result.success:
        return result.response_text or DEFAULT_COMPLETION_TEXT
    if result.error:
        return AGENT_ERROR_TEMPLATE.format(error=result.error)
    return NO_CONTENT_TEXT


class WorkflowTransitions:
    """Runs individual nodes of the workflow state machine."""

    def __init__(
        self,
        router: IntentRouter,
        registry: AgentRegistry,
        retry_policy: RetryPolicy | None = None,
        event_sink: EventSink | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._router = router
        self._registry = registry
        self._retry_policy = retry_policy or RetryPolicy()
        self._events = event_sink or NullEventSink()
        self._sleep = sleep

    async def run(self, node: str, state: WorkflowState, execution_id: str = "") -> Transition:
        """Dispatch `node` to its handler."""
        if node == ControlNode.ROUTING.value:
            return await self.routing(state)
        if node == ControlNode.ERROR.value:
            return await self.error(state)
        if node == ControlNode.FORMATTING.value:
            return await self.formatting(state)
        return await self.agent(node, state, execution_id)

    # =========================================================================
    # Nodes
    # =========================================================================

    async def routing(self, state: WorkflowState) -> Transition:
        context = await self._router.get_context(state.conversation_id, state.user_id)
        decision = await self._router.decide(state.user_input, context)
        turn = await self._router.update_context(context, decision, state.user_input)

        target = decision.target_agent_type
        next_node = target if self._registry.has_handler(target) else ControlNode.ERROR.value
        return Transition(
            update={
                "routing_decision": decision,
                "current_agent_type": target,
                "turn_id": turn.turn_id,
            },
            next_node=next_node,
        )

    async def error(self, state: WorkflowState) -> Transition:
        target = state.current_agent_type or "unknown"
        message = str(UnknownAgentTypeError(target))
        logger.warning(f"Routing for {state.conversation_id} failed: {message}")
        return Transition(
            update={"errors": [message]},
            next_node=ControlNode.FORMATTING.value,
        )

    async def formatting(self, state: WorkflowState) -> Transition:
        text = format_response(state)
        if state.turn_id:
            await self._router.complete_turn(state.conversation_id, state.turn_id, text)
        return Transition(
            update={"final_response_text": text},
            next_node=ControlNode.END.value,
        )

    async def agent(self, agent_type: str, state: WorkflowState, execution_id: str = "") -> Transition:
        try:
            handler = self._registry.get_handler(agent_type)
        except UnknownAgentTypeError as e:
            # Unregistered between routing and dispatch.
            result = AgentInvocationResult(success=False, error=str(e), metadata={"attempts": 0})
        else:
            result = await self.invoke_with_retry(agent_type, handler, state, execution_id)

        return Transition(
            update={
                "current_agent_type": agent_type,
                "per_agent_result": {agent_type: result},
            },
            next_node=ControlNode.FORMATTING.value,
        )

    # =========================================================================
    # Retry
    # =========================================================================

    async def invoke_with_retry(
        self,
        agent_type: str,
        handler: AgentHandler,
        state: WorkflowState,
        execution_id: str = "",
    ) -> AgentInvocationResult:
        """
        Invoke `handler`, retrying failed results and raised exceptions.

        Up to `max_retries` retries; retry n waits `backoff_ms * n`. The
        returned result carries the total duration and `metadata.attempts`.
        """
        policy = self._retry_policy
        max_attempts = policy.max_retries + 1
        failures: list[str] = []
        result = AgentInvocationResult(success=False)
        attempts = 0
        start = time.perf_counter()

        await self._emit(EventType.FLOW_AGENT_STARTED, state, execution_id, agent_type)

        for attempt in range(1, max_attempts + 1):
            attempts = attempt
            if attempt > 1:
                delay_ms = policy.backoff_ms * (attempt - 1)
                logger.warning(
                    f"Retrying {agent_type} for {state.conversation_id} "
                    f"(attempt {attempt}/{max_attempts}) in {delay_ms}ms"
                )
                await self._emit(
                    EventType.EXECUTION_RETRYING,
                    state,
                    execution_id,
                    agent_type,
                    data={"attempt": attempt, "delay_ms": delay_ms, "last_error": failures[-1]},
                    severity=EventSeverity.WARNING,
                )
                await self._sleep(delay_ms / 1000)

            try:
                result = await handler.invoke(state.user_input, state.conversation_id)
            except Exception as e:
                error = AgentInvocationError(agent_type, e)
                logger.error(str(error), exc_info=True)
                result = AgentInvocationResult(success=False, error=str(error))

            if result.success:
                break
            failures.append(result.error or "handler reported failure")

        duration_ms = int((time.perf_counter() - start) * 1000)
        final = result.model_copy(
            update={
                "duration_ms": duration_ms,
                "metadata": {
                    **result.metadata,
                    "attempts": attempts,
                    "failures": failures,
                },
            }
        )

        if final.success:
            await self._emit(
                EventType.FLOW_AGENT_COMPLETED, state, execution_id, agent_type,
                data={"attempts": attempts, "duration_ms": duration_ms},
            )
        else:
            logger.error(f"{agent_type} failed after {attempts} attempts: {final.error}")
            await self._emit(
                EventType.FLOW_AGENT_FAILED, state, execution_id, agent_type,
                data={"attempts": attempts, "error": final.error},
                severity=EventSeverity.ERROR,
            )
        return final

    async def _emit(
        self,
        event_type: EventType,
        state: WorkflowState,
        execution_id: str,
        node: str,
        data: dict[str, Any] | None = None,
        severity: EventSeverity = EventSeverity.INFO,
    ) -> None:
        await emit_safely(
            self._events,
            WorkflowEvent(
                event_type=event_type,
                severity=severity,
                execution_id=execution_id,
                conversation_id=state.conversation_id,
                node=node,
                step_count=state.metadata.step_count,
                data=data or {},
            ),
        )
