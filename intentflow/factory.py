"""
Workflow Factory

Wires a registry, router and engine from IntentFlowSettings.

Usage:
    store = await create_memory_store()
    engine = await build_workflow(testing_settings(), store, handlers={"inventory": handler})
    result = await engine.execute("抽纸消耗1包")
"""

import logging
from typing import Mapping

from intentflow.config import IntentFlowSettings, settings_from_env
from intentflow.events.sink import EventSink, LoggingEventSink
from intentflow.llm.generator import LangChainTextGenerator, TextGenerator
from intentflow.orchestration.engine import WorkflowEngine
from intentflow.registry.agent import DEFAULT_AGENT_PROFILES, AgentHandler
from intentflow.registry.llm_handler import LLMAgentHandler
from intentflow.registry.registry import AgentRegistry
from intentflow.routing.router import IntentRouter
from intentflow.storage.factory import create_store_from_env
from intentflow.storage.ports import ConversationStateStore

logger = logging.getLogger(__name__)


async def build_workflow(
    settings: IntentFlowSettings,
    store: ConversationStateStore,
    handlers: Mapping[str, AgentHandler] | None = None,
    generator: TextGenerator | None = None,
    event_sink: EventSink | None = None,
) -> WorkflowEngine:
    """
    Build a ready-to-use WorkflowEngine.

    Args:
        settings: Router, workflow and LLM settings
        store: Conversation state store shared by the router
        handlers: agent_type -> handler; when omitted and a generator is
            available, every default profile gets an LLMAgentHandler
        generator: Text generator for classification and default handlers
        event_sink: Receives workflow events

    Returns:
        WorkflowEngine whose `router` and `registry` are the wired instances
    """
    registry = AgentRegistry()

    if handlers is not None:
        for agent_type, handler in handlers.items():
            await registry.register(agent_type, handler)
    elif generator is not None:
        for agent_type, profile in DEFAULT_AGENT_PROFILES.items():
            await registry.register(agent_type, LLMAgentHandler(profile, generator), profile=profile)
    else:
        logger.warning("No agent handlers configured; every request will take the error path")

    router = IntentRouter(
        store=store,
        registry=registry,
        generator=generator if settings.use_llm else None,
        config=settings.router,
    )
    engine = WorkflowEngine(
        router=router,
        registry=registry,
        config=settings.workflow,
        event_sink=event_sink,
    )

    logger.info(
        f"Workflow built: agents={registry.agent_types}, "
        f"classifier={'llm' if settings.use_llm and generator else 'rules'}"
    )
    return engine


async def create_workflow_from_env(
    handlers: Mapping[str, AgentHandler] | None = None,
) -> tuple[WorkflowEngine, ConversationStateStore]:
    """
    Build the store, generator and engine from INTENTFLOW_* variables.

    The caller owns the returned store and must close it.
    """
    settings = settings_from_env()
    store = await create_store_from_env()
    generator = LangChainTextGenerator(config=settings.llm)
    engine = await build_workflow(
        settings,
        store,
        handlers=handlers,
        generator=generator,
        event_sink=LoggingEventSink(),
    )
    return engine, store
