"""
IntentFlow Configuration

Pydantic settings models for the router, the workflow engine and the
text-generation client, plus environment loading and the named presets
(production, development, test).

Environment variables (all optional):
- INTENTFLOW_CONFIDENCE_THRESHOLD: Minimum routing confidence (default: 0.7)
- INTENTFLOW_MAX_CONTEXT_HISTORY: Sliding history window size (default: 10)
- INTENTFLOW_FALLBACK_AGENT: Fallback agent type (default: "inventory")
- INTENTFLOW_MAX_STEPS: Maximum state-machine transitions (default: 10)
- INTENTFLOW_TIMEOUT_SECONDS: Whole-execution timeout (default: 300)
- INTENTFLOW_MAX_RETRIES: Agent handler retries (default: 3)
- INTENTFLOW_BACKOFF_MS: Linear backoff unit in milliseconds (default: 1000)
- INTENTFLOW_USE_LLM: "false" to route with the rule classifier only
- INTENTFLOW_LLM_MODEL / INTENTFLOW_LLM_TEMPERATURE / INTENTFLOW_LLM_MAX_TOKENS /
  INTENTFLOW_LLM_TIMEOUT / INTENTFLOW_LLM_MAX_RETRIES: Text generation client
"""

import os

from pydantic import BaseModel, Field

from intentflow.llm.factory import LLMConfig


class RetryPolicy(BaseModel):
    """Retry policy for agent handler invocations."""

    max_retries: int = Field(
        default=3,
        ge=0,
        description="Number of retries after the first failed attempt",
    )
    backoff_ms: int = Field(
        default=1000,
        ge=0,
        description="Linear backoff unit; the wait before retry n is backoff_ms * n",
    )


class RouterConfig(BaseModel):
    """Configuration for the IntentRouter."""

    confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Decisions below this confidence are boosted or replaced by the fallback agent",
    )
    max_context_history: int = Field(
        default=10,
        ge=1,
        description="Number of conversation turns kept in the sliding window",
    )
    fallback_agent_type: str = Field(
        default="inventory",
        description="Agent type used when routing cannot confidently resolve one",
    )
    enable_context_learning: bool = Field(
        default=True,
        description="Apply the history/entity confidence boost to low-confidence decisions",
    )
    enable_entity_extraction: bool = Field(
        default=True,
        description="Run the pattern-based entity extractor on every input",
    )
    routing_history_snapshot: int = Field(
        default=5,
        ge=0,
        description="Number of recent decisions copied into the persisted agent context",
    )
    max_cached_conversations: int = Field(
        default=1000,
        ge=1,
        description="Conversations whose recent decisions are cached in memory; least recently used are evicted",
    )


class WorkflowConfig(BaseModel):
    """Configuration for the WorkflowEngine."""

    max_steps: int = Field(
        default=10,
        ge=1,
        description="Maximum number of state-machine transitions per execution",
    )
    timeout_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Whole-execution timeout in seconds",
    )
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)


class IntentFlowSettings(BaseModel):
    """Aggregate settings for a complete routing/workflow stack."""

    router: RouterConfig = Field(default_factory=RouterConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    use_llm: bool = Field(
        default=True,
        description="Classify with the text generator; False routes with the rule classifier only",
    )


# =============================================================================
# Environment
# =============================================================================

def settings_from_env() -> IntentFlowSettings:
    """Create IntentFlowSettings from INTENTFLOW_* environment variables."""
    max_tokens_str = os.getenv("INTENTFLOW_LLM_MAX_TOKENS")

    return IntentFlowSettings(
        router=RouterConfig(
            confidence_threshold=float(os.getenv("INTENTFLOW_CONFIDENCE_THRESHOLD", "0.7")),
            max_context_history=int(os.getenv("INTENTFLOW_MAX_CONTEXT_HISTORY", "10")),
            fallback_agent_type=os.getenv("INTENTFLOW_FALLBACK_AGENT", "inventory"),
            enable_context_learning=os.getenv("INTENTFLOW_CONTEXT_LEARNING", "true").lower() != "false",
            enable_entity_extraction=os.getenv("INTENTFLOW_ENTITY_EXTRACTION", "true").lower() != "false",
        ),
        workflow=WorkflowConfig(
            max_steps=int(os.getenv("INTENTFLOW_MAX_STEPS", "10")),
            timeout_seconds=float(os.getenv("INTENTFLOW_TIMEOUT_SECONDS", "300")),
            retry_policy=RetryPolicy(
                max_retries=int(os.getenv("INTENTFLOW_MAX_RETRIES", "3")),
                backoff_ms=int(os.getenv("INTENTFLOW_BACKOFF_MS", "1000")),
            ),
        ),
        llm=LLMConfig(
            model=os.getenv("INTENTFLOW_LLM_MODEL", "gpt-4o-mini"),
            temperature=float(os.getenv("INTENTFLOW_LLM_TEMPERATURE", "0.1")),
            max_tokens=int(max_tokens_str) if max_tokens_str else None,
            timeout=float(os.getenv("INTENTFLOW_LLM_TIMEOUT", "30.0")),
            max_retries=int(os.getenv("INTENTFLOW_LLM_MAX_RETRIES", "2")),
        ),
        use_llm=os.getenv("INTENTFLOW_USE_LLM", "true").lower() != "false",
    )


# =============================================================================
# Presets
# =============================================================================

def production_settings() -> IntentFlowSettings:
    """Defaults tuned for production traffic."""
    return IntentFlowSettings(
        router=RouterConfig(confidence_threshold=0.7, max_context_history=10),
        workflow=WorkflowConfig(
            max_steps=10,
            timeout_seconds=300.0,
            retry_policy=RetryPolicy(max_retries=3, backoff_ms=1000),
        ),
    )


def development_settings() -> IntentFlowSettings:
    """Looser threshold and faster retries for local work."""
    return IntentFlowSettings(
        router=RouterConfig(confidence_threshold=0.6, max_context_history=20),
        workflow=WorkflowConfig(
            max_steps=15,
            timeout_seconds=600.0,
            retry_policy=RetryPolicy(max_retries=2, backoff_ms=500),
        ),
    )


def testing_settings() -> IntentFlowSettings:
    """Deterministic preset: rule classifier only, short budgets."""
    return IntentFlowSettings(
        router=RouterConfig(
            confidence_threshold=0.5,
            max_context_history=5,
            enable_context_learning=False,
        ),
        workflow=WorkflowConfig(
            max_steps=5,
            timeout_seconds=30.0,
            retry_policy=RetryPolicy(max_retries=1, backoff_ms=10),
        ),
        use_llm=False,
    )
