"""
Workflow Engine

Drives the routing -> agent -> formatting state machine for one request and
returns a single structured result.

Guarantees:
- Every transition increments the step count by exactly one; a run whose
  next step would exceed `max_steps` aborts with a failure result
- The whole call is bounded by `timeout_seconds`. On timeout the caller gets
  a failure result; the in-flight transition is not interrupted and finishes
  in the background, and context it already persisted stays persisted
- Executions on the same conversation id run one at a time; distinct
  conversations run independently
- `execute` and `stream` never raise for workflow failures
- Every run delivers a terminal result, including runs whose transition
  raised or whose partial update held values that are not JSON-ready
"""

import asyncio
import logging
import weakref
from typing import Any, AsyncIterator
from uuid import uuid4

from pydantic_core import to_jsonable_python

from intentflow.config import WorkflowConfig
from intentflow.errors import StepLimitExceeded, WorkflowTimeoutError
from intentflow.events.models import EventSeverity, EventType, WorkflowEvent
from intentflow.events.sink import EventSink, NullEventSink, emit_safely
from intentflow.orchestration.state import (
    ControlNode,
    WorkflowResult,
    WorkflowState,
    WorkflowUpdate,
)
from intentflow.orchestration.transitions import ABORTED_TEXT, Transition, WorkflowTransitions
from intentflow.registry.registry import AgentRegistry
from intentflow.routing.router import IntentRouter

logger = logging.getLogger(__name__)


DEFAULT_USER_ID = "default-user"


def new_conversation_id() -> str:
    return f"thread-{uuid4()}"


class WorkflowEngine:
    """
    Runs the workflow state machine.

    Each call spawns one background run that pushes WorkflowUpdate items onto
    a queue; `stream` relays them until the terminal item or the deadline.
    """

    def __init__(
        self,
        router: IntentRouter,
        registry: AgentRegistry,
        config: WorkflowConfig | None = None,
        event_sink: EventSink | None = None,
        transitions: WorkflowTransitions | None = None,
    ):
        """
        Initialize the engine.

        Args:
            router: Intent router used by the routing node
            registry: Agent handlers; one agent node per registered type
            config: Step, timeout and retry configuration
            event_sink: Receives workflow events (discarded by default)
            transitions: Node implementations (built from the above by default)
        """
        self._router = router
        self._registry = registry
        self._config = config or WorkflowConfig()
        self._events = event_sink or NullEventSink()
        self._transitions = transitions or WorkflowTransitions(
            router=router,
            registry=registry,
            retry_policy=self._config.retry_policy,
            event_sink=self._events,
        )

        # conversation_id -> lock serializing executions on that conversation
        self._conversation_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        # Runs still executing, including ones whose caller timed out
        self._runs: set[asyncio.Task] = set()

        self._executions = 0
        self._failures = 0
        self._timeouts = 0

    @property
    def config(self) -> WorkflowConfig:
        return self._config

    @property
    def router(self) -> IntentRouter:
        return self._router

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    @property
    def nodes(self) -> list[str]:
        """Current node set; agent nodes follow the registry."""
        return [
            ControlNode.START.value,
            ControlNode.ROUTING.value,
            *self._registry.agent_types,
            ControlNode.ERROR.value,
            ControlNode.FORMATTING.value,
            ControlNode.END.value,
        ]

    # =========================================================================
    # Public API
    # =========================================================================

    async def execute(
        self,
        user_input: str,
        conversation_id: str | None = None,
        user_id: str = DEFAULT_USER_ID,
    ) -> WorkflowResult:
        """
        Run the workflow to completion and return the terminal result.

        Args:
            user_input: Raw user text
            conversation_id: Conversation to continue (a new one when None)
            user_id: Owner of the conversation

        Returns:
            WorkflowResult; failures are reported with success=False
        """
        conversation_id = conversation_id or new_conversation_id()
        result: WorkflowResult | None = None
        async for update in self.stream(user_input, conversation_id, user_id):
            if update.result is not None:
                result = update.result

        if result is None:
            logger.error(f"Workflow stream for {conversation_id} ended without a result")
            return WorkflowResult(
                success=False,
                response_text=ABORTED_TEXT,
                conversation_id=conversation_id,
                metadata={"abort_reason": "error"},
                error="Workflow ended without a result",
            )
        return result

    async def stream(
        self,
        user_input: str,
        conversation_id: str | None = None,
        user_id: str = DEFAULT_USER_ID,
    ) -> AsyncIterator[WorkflowUpdate]:
        """
        Run the workflow, yielding one update per transition.

        The last item always carries the WorkflowResult.
        """
        conversation_id = conversation_id or new_conversation_id()
        execution_id = uuid4().hex
        queue: asyncio.Queue[WorkflowUpdate] = asyncio.Queue()

        run = asyncio.create_task(
            self._run(user_input, conversation_id, user_id, execution_id, queue),
            name=f"workflow-{execution_id}",
        )
        self._runs.add(run)
        run.add_done_callback(self._runs.discard)
        self._executions += 1

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.timeout_seconds
        step_count = 0

        while True:
            remaining = deadline - loop.time()
            try:
                if remaining <= 0:
                    raise asyncio.TimeoutError
                update = await asyncio.wait_for(queue.get(), timeout=remaining)
            except asyncio.TimeoutError:
                yield await self._timeout_update(conversation_id, execution_id, step_count)
                return

            step_count = update.step_count
            yield update
            if update.result is not None:
                if not update.result.success:
                    self._failures += 1
                return

    async def shutdown(self, timeout: float | None = None) -> None:
        """Wait for background runs, including abandoned ones, to finish."""
        runs = list(self._runs)
        if not runs:
            return
        logger.info(f"Waiting for {len(runs)} workflow runs to finish")
        _, pending = await asyncio.wait(runs, timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} workflow runs still running at shutdown")

    def stats(self) -> dict[str, Any]:
        return {
            "registered_agents": self._registry.agent_types,
            "executions": self._executions,
            "failures": self._failures,
            "timeouts": self._timeouts,
            "in_flight": len(self._runs),
            "max_steps": self._config.max_steps,
            "timeout_seconds": self._config.timeout_seconds,
            "retry_policy": self._config.retry_policy.model_dump(),
        }

    # =========================================================================
    # Run
    # =========================================================================

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._conversation_locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._conversation_locks[conversation_id] = lock
        return lock

    async def _run(
        self,
        user_input: str,
        conversation_id: str,
        user_id: str,
        execution_id: str,
        queue: asyncio.Queue[WorkflowUpdate],
    ) -> None:
        lock = self._lock_for(conversation_id)
        async with lock:
            state = WorkflowState(
                user_input=user_input,
                conversation_id=conversation_id,
                user_id=user_id,
            )
            await self._emit(EventType.EXECUTION_STARTED, state, execution_id, message=user_input[:100])
            logger.info(f"Workflow {execution_id} started for conversation {conversation_id}")

            path: list[str] = []
            result: WorkflowResult | None = None
            try:
                node = ControlNode.ROUTING.value
                while node != ControlNode.END.value:
                    if state.metadata.step_count + 1 > self._config.max_steps:
                        raise StepLimitExceeded(self._config.max_steps, node)

                    transition = await self._transitions.run(node, state, execution_id)
                    state = state.apply(transition.update, node)
                    path.append(node)
                    await self._publish(state, execution_id, node, transition, queue)
                    node = transition.next_node

                result = self._completed_result(state, execution_id, path)
            except StepLimitExceeded as e:
                logger.error(f"Workflow {execution_id} aborted: {e}")
                result = self._failure_result(state, execution_id, path, str(e), "step_limit")
            except Exception as e:
                logger.error(f"Workflow {execution_id} failed: {e}", exc_info=True)
                result = self._failure_result(state, execution_id, path, str(e), "error")
            finally:
                if result is None:
                    # Cancelled or interrupted by a BaseException
                    result = self._failure_result(
                        state, execution_id, path, "Workflow run was interrupted", "interrupted"
                    )
                await self._finish(state, execution_id, result, queue)

    async def _finish(
        self,
        state: WorkflowState,
        execution_id: str,
        result: WorkflowResult,
        queue: asyncio.Queue[WorkflowUpdate],
    ) -> None:
        """Report the outcome and deliver the terminal update."""
        event_type = EventType.EXECUTION_COMPLETED if result.success else EventType.EXECUTION_FAILED
        await self._emit(
            event_type,
            state,
            execution_id,
            node=ControlNode.END.value,
            data={"success": result.success, "error": result.error},
            severity=EventSeverity.INFO if result.success else EventSeverity.ERROR,
        )
        logger.info(
            f"Workflow {execution_id} finished: success={result.success}, "
            f"steps={state.metadata.step_count}"
        )
        await queue.put(
            WorkflowUpdate(
                node=ControlNode.END.value,
                step_count=state.metadata.step_count,
                result=result,
            )
        )

    async def _publish(
        self,
        state: WorkflowState,
        execution_id: str,
        node: str,
        transition: Transition,
        queue: asyncio.Queue[WorkflowUpdate],
    ) -> None:
        await self._emit(
            EventType.FLOW_TRANSITION,
            state,
            execution_id,
            node=node,
            data={"next_node": transition.next_node},
        )
        await queue.put(
            WorkflowUpdate(
                node=node,
                next_node=transition.next_node,
                step_count=state.metadata.step_count,
                update=to_jsonable_python(transition.update, fallback=str),
            )
        )

    # =========================================================================
    # Results
    # =========================================================================

    def _base_metadata(self, state: WorkflowState, execution_id: str, path: list[str]) -> dict[str, Any]:
        decision = state.routing_decision
        metadata: dict[str, Any] = {
            "execution_id": execution_id,
            "start_time": state.metadata.start_time.isoformat(),
            "step_count": state.metadata.step_count,
            "path": list(path),
            "errors": list(state.metadata.errors),
            "agent_type": state.current_agent_type,
        }
        if decision is not None:
            metadata["routing"] = {
                "target_agent_type": decision.target_agent_type,
                "confidence": decision.confidence,
                "reasoning": decision.reasoning,
                "entities": decision.extracted_entities,
            }
        result = state.per_agent_result.get(state.current_agent_type or "")
        if result is not None:
            metadata["agent_result"] = to_jsonable_python(result, fallback=str)
        return metadata

    def _completed_result(self, state: WorkflowState, execution_id: str, path: list[str]) -> WorkflowResult:
        routed_to_error = ControlNode.ERROR.value in path
        error = state.metadata.errors[-1] if routed_to_error and state.metadata.errors else None
        return WorkflowResult(
            success=not routed_to_error,
            response_text=state.final_response_text,
            conversation_id=state.conversation_id,
            metadata=self._base_metadata(state, execution_id, path),
            error=error,
        )

    def _failure_result(
        self,
        state: WorkflowState,
        execution_id: str,
        path: list[str],
        error: str,
        reason: str,
    ) -> WorkflowResult:
        try:
            metadata = self._base_metadata(state, execution_id, path)
        except Exception as e:
            logger.error(f"Workflow {execution_id}: could not collect result metadata: {e}")
            metadata = {
                "execution_id": execution_id,
                "step_count": state.metadata.step_count,
                "path": list(path),
                "errors": list(state.metadata.errors),
            }
        metadata["abort_reason"] = reason
        metadata["errors"] = metadata["errors"] + [error]
        return WorkflowResult(
            success=False,
            response_text=ABORTED_TEXT,
            conversation_id=state.conversation_id,
            metadata=metadata,
            error=error,
        )

    async def _timeout_update(
        self,
        conversation_id: str,
        execution_id: str,
        step_count: int,
    ) -> WorkflowUpdate:
        self._timeouts += 1
        self._failures += 1
        error = str(WorkflowTimeoutError(self._config.timeout_seconds))
        logger.error(f"Workflow {execution_id} for {conversation_id}: {error}")

        await emit_safely(
            self._events,
            WorkflowEvent(
                event_type=EventType.EXECUTION_TIMEOUT,
                severity=EventSeverity.ERROR,
                execution_id=execution_id,
                conversation_id=conversation_id,
                step_count=step_count,
                message=error,
            ),
        )
        return WorkflowUpdate(
            node=ControlNode.END.value,
            step_count=step_count,
            result=WorkflowResult(
                success=False,
                response_text=ABORTED_TEXT,
                conversation_id=conversation_id,
                metadata={
                    "execution_id": execution_id,
                    "step_count": step_count,
                    "abort_reason": "timeout",
                    "errors": [error],
                },
                error=error,
            ),
        )

    async def _emit(
        self,
        event_type: EventType,
        state: WorkflowState,
        execution_id: str,
        node: str | None = None,
        message: str = "",
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
                message=message,
                data=data or {},
            ),
        )
