"""
Exception hierarchy for the document RAG agent.
"""

from typing import Any, Dict, Optional


class RAGAgentError(Exception):
    """Base exception for all RAG agent errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(RAGAgentError):
    """Raised when a component is configured with invalid parameters."""


class ExtractionError(RAGAgentError):
    """Raised when text cannot be extracted from a document."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        self.path = path
        super().__init__(message, **kwargs)


class InvalidRequestError(RAGAgentError):
    """Raised when a user request is rejected before reaching any backend."""


class BackendUnavailableError(RAGAgentError):
    """Raised when the embedding or generation backend cannot serve a request."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        self.status_code = status_code
        super().__init__(message, **kwargs)


class ToolLoopExceededError(RAGAgentError):
    """Raised when the backend keeps requesting tools past the round-trip limit."""

    def __init__(self, max_rounds: int, **kwargs):
        self.max_rounds = max_rounds
        super().__init__(
            f"Backend requested more than {max_rounds} tool round-trips", **kwargs
        )


class ChatTimeoutError(RAGAgentError):
    """Raised when a chat or orchestration call does not finish in time."""

    def __init__(self, timeout: float, **kwargs):
        self.timeout = timeout
        super().__init__(f"No response within {timeout:.1f} seconds", **kwargs)


class UnknownToolError(RAGAgentError):
    """Raised when a tool name is not present in the registry."""

    def __init__(self, name: str, **kwargs):
        self.name = name
        super().__init__(f"Tool '{name}' is not registered", **kwargs)
