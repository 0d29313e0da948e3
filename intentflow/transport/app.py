"""
IntentFlow Application

FastAPI application exposing the workflow engine over HTTP.
This is the main entry point for running the service:

    uvicorn intentflow.transport.app:app

Endpoints:
- POST /chat: Run one request through the workflow and return the result
- POST /chat/stream: Same, as newline-delimited JSON WorkflowUpdate items
- DELETE /conversations/{conversation_id}: Forget a conversation
- GET /health: Registered agents and engine statistics

Storage is configured via environment variables (see intentflow.storage.factory):
- INTENTFLOW_STORAGE_BACKEND: "memory", "sqlite", "postgresql", "mysql"
- INTENTFLOW_DATABASE_URL: SQLAlchemy async connection URL
- INTENTFLOW_REDIS_URL: Redis URL (takes precedence over SQL)

Routing and text generation (see intentflow.config):
- INTENTFLOW_USE_LLM: "false" to route with the rule classifier only
- INTENTFLOW_LLM_MODEL: Model identifier (default: "gpt-4o-mini")
  - OpenAI: "gpt-4o-mini", "gpt-4o"
  - Azure OpenAI: "azure/gpt-4o-mini"
  - Anthropic: "claude-sonnet-4-5-20250929"
  - Google Gemini: "gemini/gemini-2.0-flash"
  - Ollama: "ollama/llama3.2"
  - DeepSeek: "deepseek/deepseek-chat"

Environment variables can be loaded from a .env file in the project root.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()

from intentflow.factory import create_workflow_from_env
from intentflow.orchestration import WorkflowEngine, WorkflowResult
from intentflow.orchestration.engine import DEFAULT_USER_ID
from intentflow.storage import ConversationStateStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Global instances (created at startup)
store: ConversationStateStore | None = None
engine: WorkflowEngine | None = None


class ChatRequest(BaseModel):
    """Body of /chat and /chat/stream."""

    message: str = Field(..., min_length=1, description="Raw user text")
    conversation_id: str | None = Field(
        default=None,
        description="Conversation to continue; a new one is created when omitted",
    )
    user_id: str = Field(default=DEFAULT_USER_ID)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the store and workflow engine, and waits for background runs on
    shutdown.
    """
    global store, engine

    # Startup
    logger.info("Starting IntentFlow...")

    engine, store = await create_workflow_from_env()
    logger.info(f"Storage initialized: {type(store).__name__}")
    logger.info(f"Agents registered: {engine.registry.agent_types}")

    logger.info("IntentFlow started")

    yield

    # Shutdown
    logger.info("Shutting down IntentFlow...")
    await engine.shutdown(timeout=engine.config.timeout_seconds)
    await store.close()
    engine = None
    store = None
    logger.info("IntentFlow stopped")


app = FastAPI(
    title="IntentFlow",
    description="Intent routing and workflow orchestration for multi-agent assistants",
    version="0.1.0",
    lifespan=lifespan
)


def _require_engine() -> WorkflowEngine:
    if engine is None:
        raise HTTPException(status_code=503, detail="Workflow engine not initialized")
    return engine


@app.post("/chat", response_model=WorkflowResult)
async def chat(request: ChatRequest) -> WorkflowResult:
    """Run one request through the workflow."""
    workflow = _require_engine()
    return await workflow.execute(
        request.message,
        conversation_id=request.conversation_id,
        user_id=request.user_id,
    )


@app.post("/chat/stream")
async def chat_stream(request: ChatRequest) -> StreamingResponse:
    """
    Run one request and stream each transition.

    Every line is a JSON WorkflowUpdate; the last one carries the result.
    """
    workflow = _require_engine()

    async def lines() -> AsyncIterator[str]:
        async for update in workflow.stream(
            request.message,
            conversation_id=request.conversation_id,
            user_id=request.user_id,
        ):
            yield update.model_dump_json() + "\n"

    return StreamingResponse(lines(), media_type="application/x-ndjson")


@app.delete("/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str):
    """Delete the stored conversation and its cached routing decisions."""
    workflow = _require_engine()
    deleted = await workflow.router.clear_context(conversation_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Conversation '{conversation_id}' not found")
    return {"conversation_id": conversation_id, "deleted": True}


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy" if engine else "starting",
        "agents": engine.registry.agent_count if engine else 0,
        "engine": engine.stats() if engine else {},
        "routing": engine.router.routing_stats() if engine else {},
    }
