"""LocalMatrix exceptions."""

from typing import Any, Dict, Optional


class MatrixError(Exception):
    """Base class for all LocalMatrix errors."""

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def __str__(self) -> str:
        return self.message


class TransportError(MatrixError):
    """Raised when a transport is misused or cannot perform an operation."""


class InvalidAgentIdError(TransportError, ValueError):
    """Agent id failed the safe-character check.

    Raised before the id is used to build any filesystem path.
    """


class InvalidRoutingError(TransportError, ValueError):
    """Room id is malformed or does not resolve to a single recipient."""


class AgentNotFoundError(MatrixError, LookupError):
    """Recipient is not present in the agent directory."""


class SelfSendError(MatrixError, ValueError):
    """An agent tried to send a message to itself."""
