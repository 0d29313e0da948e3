"""
LLM Layer for IntentFlow

Chat model factory and the text-generation capability used for intent
classification and agent replies.
"""

from .factory import LLMConfig, create_llm, create_llm_from_config
from .generator import LangChainTextGenerator, TextGenerator

__all__ = [
    "LLMConfig",
    "create_llm",
    "create_llm_from_config",
    "TextGenerator",
    "LangChainTextGenerator",
]
