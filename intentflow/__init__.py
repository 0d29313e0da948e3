# IntentFlow - Intent Routing and Workflow Orchestration
# Routes free-text requests to domain agents and drives each request through
# a bounded state machine with retries and persistent conversation context

__version__ = "0.1.0"

# Re-export commonly used components for convenience
from intentflow.config import (
    IntentFlowSettings,
    RetryPolicy,
    RouterConfig,
    WorkflowConfig,
    development_settings,
    production_settings,
    settings_from_env,
    testing_settings,
)
from intentflow.errors import (
    AgentInvocationError,
    AgentRegistrationError,
    ClassificationParseError,
    IntentFlowError,
    StepLimitExceeded,
    UnknownAgentTypeError,
    WorkflowTimeoutError,
)
from intentflow.factory import build_workflow, create_workflow_from_env
from intentflow.orchestration import (
    WorkflowEngine,
    WorkflowResult,
    WorkflowUpdate,
)
from intentflow.registry import (
    AgentHandler,
    AgentInvocationResult,
    AgentProfile,
    AgentRegistry,
    FunctionAgentHandler,
)
from intentflow.routing import IntentRouter
from intentflow.state import (
    ConversationState,
    ConversationTurn,
    RoutingContext,
    RoutingDecision,
)

__all__ = [
    "__version__",
    # Configuration
    "IntentFlowSettings",
    "RetryPolicy",
    "RouterConfig",
    "WorkflowConfig",
    "development_settings",
    "production_settings",
    "settings_from_env",
    "testing_settings",
    # Errors
    "AgentInvocationError",
    "AgentRegistrationError",
    "ClassificationParseError",
    "IntentFlowError",
    "StepLimitExceeded",
    "UnknownAgentTypeError",
    "WorkflowTimeoutError",
    # Composition
    "build_workflow",
    "create_workflow_from_env",
    # Orchestration
    "WorkflowEngine",
    "WorkflowResult",
    "WorkflowUpdate",
    # Registry
    "AgentHandler",
    "AgentInvocationResult",
    "AgentProfile",
    "AgentRegistry",
    "FunctionAgentHandler",
    # Routing
    "IntentRouter",
    # State
    "ConversationState",
    "ConversationTurn",
    "RoutingContext",
    "RoutingDecision",
]
