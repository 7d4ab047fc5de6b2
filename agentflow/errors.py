"""
AgentFlow Errors - Exception taxonomy shared across the framework

- ConfigurationError: fatal to the operation that hit it (empty registry,
  missing start node, dangling edge, unknown agent name)
- RuleEvaluationError: malformed rule input; recorded on the rule and
  logged, never raised while evaluating
- ExecutionLoopError: workflow step budget exhausted
- DispatchError: LLM provider failure while running an agent
"""

from typing import Optional


class AgentFlowError(Exception):
    """Base class for all AgentFlow errors"""
    pass


class ConfigurationError(AgentFlowError):
    """Raised when agent or workflow configuration cannot be used"""
    pass


class RuleEvaluationError(AgentFlowError):
    """Raised when a rule cannot be built (e.g. invalid regex pattern)"""

    def __init__(self, message: str, pattern: Optional[str] = None):
        super().__init__(message)
        self.pattern = pattern


class ExecutionLoopError(AgentFlowError):
    """Raised when a workflow run exceeds its step budget"""

    def __init__(self, max_executions: int):
        super().__init__(
            f"Infinite loop detected in workflow (maximum of {max_executions} executions)"
        )
        self.max_executions = max_executions


class DispatchError(AgentFlowError):
    """Raised by LLM providers when an agent dispatch fails"""

    def __init__(self, message: str, agent_name: Optional[str] = None):
        super().__init__(message)
        self.agent_name = agent_name
