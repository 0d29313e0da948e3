#!/usr/bin/env python3
"""
Household Workflow Example

Runs a few household requests through IntentFlow with canned agent handlers.

Workflow:
1. User sends a request: "抽纸消耗1包"
2. IntentRouter picks a target agent (rule classifier, or LLM when enabled)
3. WorkflowEngine invokes the agent with retry
4. The response is formatted and written back to the conversation history

Usage:
    python scripts/example_household_workflow.py

    # Route with a real model instead of the rule classifier
    INTENTFLOW_USE_LLM=true OPENAI_API_KEY=... python scripts/example_household_workflow.py
"""

import asyncio
import logging
import os

from intentflow import (
    AgentInvocationResult,
    FunctionAgentHandler,
    build_workflow,
    testing_settings,
)
from intentflow.events import LoggingEventSink
from intentflow.llm import LangChainTextGenerator
from intentflow.storage import create_memory_store

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# =============================================================================
# Canned Agents
# =============================================================================

async def inventory_agent(user_input: str, thread_key: str) -> str:
    return f"已更新库存：{user_input}"


async def finance_agent(user_input: str, thread_key: str) -> str:
    return "本月共支出 1,280 元，日用品占 35%。"


flaky_calls = 0


async def procurement_agent(user_input: str, thread_key: str) -> AgentInvocationResult:
    """Fails once, then succeeds, to show the retry loop."""
    global flaky_calls
    flaky_calls += 1
    if flaky_calls == 1:
        return AgentInvocationResult(success=False, error="supplier catalog unavailable")
    return AgentInvocationResult(success=True, response_text="已生成采购清单：抽纸 x2，牛奶 x6")


# =============================================================================
# Main
# =============================================================================

async def main():
    """Run the example conversation."""
    settings = testing_settings()
    generator = None
    if os.getenv("INTENTFLOW_USE_LLM", "false").lower() == "true":
        settings.use_llm = True
        generator = LangChainTextGenerator(config=settings.llm)

    store = await create_memory_store()
    engine = await build_workflow(
        settings,
        store,
        handlers={
            "inventory": FunctionAgentHandler(inventory_agent),
            "finance": FunctionAgentHandler(finance_agent),
            "procurement": FunctionAgentHandler(procurement_agent),
        },
        generator=generator,
        event_sink=LoggingEventSink(),
    )

    logger.info("Household Workflow Example")
    logger.info("=" * 60)

    conversation_id = "example-household"
    for message in ("抽纸消耗1包", "帮我采购一些日用品", "生成本月财务报告"):
        logger.info(f"User: {message}")
        async for update in engine.stream(message, conversation_id=conversation_id):
            if update.result is None:
                logger.info(f"  -> {update.node} (step {update.step_count}, next: {update.next_node})")
                continue
            logger.info(f"Assistant: {update.result.response_text}")
            logger.info(f"  success={update.result.success}, path={update.result.metadata.get('path')}")
        print()

    state = await store.load(conversation_id)
    logger.info(f"Conversation has {len(state.history)} turns")
    logger.info(f"Engine stats: {engine.stats()}")

    await engine.shutdown()
    await store.close()


if __name__ == "__main__":
    asyncio.run(main())
