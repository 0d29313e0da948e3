"""
IntentFlow Exceptions

Routing and workflow errors. None of these escape IntentRouter.decide or
WorkflowEngine.execute; they are raised internally and converted into
fallback decisions or failure results at those boundaries.
"""


class IntentFlowError(Exception):
    """Base exception for routing and workflow errors."""
    pass


class ClassificationParseError(IntentFlowError):
    """The classification reply held no well-formed routing payload."""

    def __init__(self, message: str, reply: str = ""):
        super().__init__(message)
        self.reply = reply


class UnknownAgentTypeError(IntentFlowError):
    """No handler is registered for the requested agent type."""

    def __init__(self, agent_type: str):
        super().__init__(f"No handler registered for agent type '{agent_type}'")
        self.agent_type = agent_type


class AgentRegistrationError(IntentFlowError):
    """Agent type is reserved or already registered."""
    pass


class AgentInvocationError(IntentFlowError):
    """An agent handler raised instead of returning a failed result."""

    def __init__(self, agent_type: str, cause: BaseException):
        super().__init__(f"Agent '{agent_type}' raised {type(cause).__name__}: {cause}")
        self.agent_type = agent_type
        self.cause = cause


class StepLimitExceeded(IntentFlowError):
    """The next transition would exceed the configured step budget."""

    def __init__(self, max_steps: int, node: str):
        super().__init__(f"Step limit of {max_steps} exceeded before entering '{node}'")
        self.max_steps = max_steps
        self.node = node


class WorkflowTimeoutError(IntentFlowError):
    """The execution did not reach END within the configured timeout."""

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Workflow execution timed out after {timeout_seconds}s")
        self.timeout_seconds = timeout_seconds
