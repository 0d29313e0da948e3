# Intent Routing
# Confidence-gated routing of free-text inputs to agent types
#
# Features:
# - LLM classification with tolerant JSON reply parsing
# - Deterministic rule-table fallback
# - Pattern-based entity extraction
# - Conversation context with a sliding history window

from intentflow.routing.entities import EntityExtractor
from intentflow.routing.parsing import (
    ClassificationPayload,
    find_first_json_object,
    parse_classification_reply,
)
from intentflow.routing.rules import (
    RoutingRule,
    RuleBasedClassifier,
    normalize_input,
)
from intentflow.routing.router import IntentRouter

__all__ = [
    # Core router
    "IntentRouter",
    # Deterministic classification
    "RoutingRule",
    "RuleBasedClassifier",
    "normalize_input",
    # Entities
    "EntityExtractor",
    # Reply parsing
    "ClassificationPayload",
    "find_first_json_object",
    "parse_classification_reply",
]
