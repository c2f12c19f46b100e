"""
Defines custom exception classes for the application.
"""
from typing import List, Optional


class DevAgentException(Exception):
    """Base exception class for the devagent application."""
    pass


class ConfigError(DevAgentException):
    """Raised when there is a configuration error."""
    pass


class GitHubAPIError(DevAgentException):
    """Raised when a call to the git hosting API fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        method: Optional[str] = None,
        path: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.method = method
        self.path = path

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @classmethod
    def not_found(cls, resource: str) -> "GitHubAPIError":
        return cls(f"GitHub resource not found: {resource}", status_code=404)


class ProviderError(DevAgentException):
    """Raised when an error occurs with an LLM provider."""

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable


class AllProvidersFailedError(ProviderError):
    """Raised when every provider in the fallback chain failed."""

    def __init__(self, providers: List[str]):
        names = ", ".join(providers) if providers else "none configured"
        super().__init__(
            f"All AI providers failed: {names}. Please check API keys and try again.",
            provider="all",
        )
        self.providers = providers


class PlanParseError(DevAgentException):
    """Raised when AI output cannot be parsed into a valid change plan."""
    pass


class PlanNotFoundError(DevAgentException):
    """Raised when a stored change plan does not exist."""

    def __init__(self, plan_id: str):
        super().__init__(f"Change plan not found: {plan_id}")
        self.plan_id = plan_id


class InvalidTransitionError(DevAgentException):
    """Raised when a plan status transition is not allowed from its current state."""

    def __init__(self, plan_id: str, current: str, target: str):
        super().__init__(f"Plan is already {current}")
        self.plan_id = plan_id
        self.current = current
        self.target = target


class FormatterError(DevAgentException):
    """Raised when an error occurs during message formatting."""
    pass
