"""
Chat Model Factory

Instantiates the chat model used for intent classification and agent replies.
The provider is selected from the model identifier prefix:

- OpenAI (default): "gpt-4o-mini", "gpt-4o"
- Azure OpenAI: "azure/<deployment>"
- Anthropic: "claude-..."
- Google Gemini: "gemini/<model>"
- Ollama: "ollama/<model>"
- DeepSeek: "deepseek/<model>"
"""

import logging
import os
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


INSTALL_HINT = (
    "Installation instructions:\n"
    "  - For OpenAI / Azure OpenAI: pip install langchain-openai\n"
    "  - For Anthropic: pip install langchain-anthropic\n"
    "  - For Google Gemini: pip install langchain-google-genai\n"
    "  - For Ollama: pip install langchain-ollama\n"
    "  - For DeepSeek: pip install langchain-deepseek"
)


class LLMConfig(BaseModel):
    """Configuration for LLM initialization."""

    model: str = Field(
        default="gpt-4o-mini",
        description="Model identifier (e.g., 'gpt-4o-mini', 'azure/gpt-4o', 'deepseek/deepseek-chat')",
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=2.0,
        description="Sampling temperature; classification wants it low",
    )
    max_tokens: Optional[int] = Field(
        default=None,
        description="Maximum tokens to generate in response",
    )
    timeout: Optional[float] = Field(
        default=30.0,
        description="Request timeout in seconds",
    )
    max_retries: int = Field(
        default=2,
        description="Maximum number of client-side retries on API errors",
    )


def _require_env(name: str, provider: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"{provider} requires {name} environment variable")
    return value


def split_model_id(model: str) -> tuple[str, str]:
    """
    Split a model identifier into (provider, model name).

    "azure/gpt-4o" -> ("azure", "gpt-4o"); bare names are OpenAI unless they
    start with "claude".
    """
    prefix, sep, name = model.partition("/")
    if sep and prefix in PROVIDERS:
        return prefix, name
    if model.startswith("claude"):
        return "anthropic", model
    return "openai", model


# =============================================================================
# Provider builders
# =============================================================================

def _openai(name: str, config: LLMConfig, **kwargs: Any) -> Any:
    from langchain_openai import ChatOpenAI

    return ChatOpenAI(
        model=name,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout=config.timeout,
        max_retries=config.max_retries,
        api_key=_require_env("OPENAI_API_KEY", "OpenAI"),
        **kwargs,
    )


def _azure(name: str, config: LLMConfig, **kwargs: Any) -> Any:
    from langchain_openai import AzureChatOpenAI

    return AzureChatOpenAI(
        azure_deployment=name,
        azure_endpoint=_require_env("AZURE_OPENAI_ENDPOINT", "Azure OpenAI"),
        api_key=_require_env("AZURE_OPENAI_API_KEY", "Azure OpenAI"),
        api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-02-15-preview"),
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout=config.timeout,
        max_retries=config.max_retries,
        **kwargs,
    )


def _anthropic(name: str, config: LLMConfig, **kwargs: Any) -> Any:
    from langchain_anthropic import ChatAnthropic

    # The Anthropic API rejects requests without max_tokens
    return ChatAnthropic(
        model=name,
        temperature=config.temperature,
        max_tokens=config.max_tokens or 1024,
        timeout=config.timeout,
        max_retries=config.max_retries,
        api_key=_require_env("ANTHROPIC_API_KEY", "Anthropic"),
        **kwargs,
    )


def _gemini(name: str, config: LLMConfig, **kwargs: Any) -> Any:
    from langchain_google_genai import ChatGoogleGenerativeAI

    return ChatGoogleGenerativeAI(
        model=name,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout=config.timeout,
        max_retries=config.max_retries,
        google_api_key=_require_env("GOOGLE_API_KEY", "Google Gemini"),
        **kwargs,
    )


def _ollama(name: str, config: LLMConfig, **kwargs: Any) -> Any:
    from langchain_ollama import ChatOllama

    return ChatOllama(
        model=name,
        temperature=config.temperature,
        num_predict=config.max_tokens,
        **kwargs,
    )


def _deepseek(name: str, config: LLMConfig, **kwargs: Any) -> Any:
    from langchain_deepseek import ChatDeepSeek

    return ChatDeepSeek(
        model=name,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout=config.timeout,
        max_retries=config.max_retries,
        api_key=_require_env("DEEPSEEK_API_KEY", "DeepSeek"),
        **kwargs,
    )


PROVIDERS: dict[str, Callable[..., Any]] = {
    "openai": _openai,
    "azure": _azure,
    "anthropic": _anthropic,
    "gemini": _gemini,
    "ollama": _ollama,
    "deepseek": _deepseek,
}


# =============================================================================
# Factory
# =============================================================================

def create_llm_from_config(config: LLMConfig, **kwargs: Any) -> Any:
    """
    Create a LangChain chat model for `config.model`.

    Environment variables required:
    - OpenAI: OPENAI_API_KEY
    - Azure OpenAI: AZURE_OPENAI_API_KEY, AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_API_VERSION (optional)
    - Anthropic: ANTHROPIC_API_KEY
    - Google Gemini: GOOGLE_API_KEY
    - DeepSeek: DEEPSEEK_API_KEY
    - Ollama: none (runs locally)

    Raises:
        ImportError: If the provider package is not installed
        ValueError: If required environment variables are missing
    """
    provider, name = split_model_id(config.model)
    logger.info(f"Creating {provider} chat model: {name} (temperature={config.temperature})")
    try:
        return PROVIDERS[provider](name, config, **kwargs)
    except ImportError as e:
        error_msg = f"Chat model package for '{provider}' is not installed: {e}\n\n{INSTALL_HINT}"
        logger.error(error_msg)
        raise ImportError(error_msg) from e


def create_llm(model: str = "gpt-4o-mini", **kwargs: Any) -> Any:
    """
    Shorthand for `create_llm_from_config(LLMConfig(model=model, ...))`.

    LLMConfig fields (temperature, max_tokens, timeout, max_retries) are taken
    from `kwargs`; anything else goes to the chat model constructor.
    """
    fields = {key: kwargs.pop(key) for key in list(kwargs) if key in LLMConfig.model_fields}
    return create_llm_from_config(LLMConfig(model=model, **fields), **kwargs)
