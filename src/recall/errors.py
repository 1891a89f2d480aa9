"""
Error taxonomy shared by the retrieval engine and its consumers.

Every error a caller can observe is a :class:`RetrievalError` carrying a
stable ``type`` string and a ``retryable`` flag. Tool handlers render these
straight into ``{type, message, retryable}`` payloads.
"""

from __future__ import annotations

from typing import Any, Dict

__all__ = [
    "RetrievalError",
    "InvalidParametersError",
    "ConfigurationError",
    "ExecutionError",
    "NotFoundError",
    "ContextError",
    "CorruptDataError",
]


class RetrievalError(RuntimeError):
    """Base class for errors surfaced to retrieval callers."""

    type: str = "execution_error"
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        """Return the consumer-facing error payload."""

        return {"type": self.type, "message": self.message, "retryable": self.retryable}


class InvalidParametersError(RetrievalError):
    """Caller input failed validation."""

    type = "invalid_parameters"
    retryable = False


class ConfigurationError(RetrievalError):
    """A dependency (the embedding model) is not ready."""

    type = "configuration_error"
    retryable = True


class ExecutionError(RetrievalError):
    """Unexpected failure while embedding, reading the store or scoring."""

    type = "execution_error"
    retryable = True


class NotFoundError(RetrievalError):
    """Point lookup missed, or the record lives outside the caller's scope."""

    type = "not_found"
    retryable = False


class ContextError(RetrievalError):
    """Operation invoked outside a scope that supports it (e.g. a DM)."""

    type = "context_error"
    retryable = False


class CorruptDataError(ValueError):
    """Stored embedding blob cannot be decoded."""

    pass
