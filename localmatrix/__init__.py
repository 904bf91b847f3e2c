"""LocalMatrix: agent discovery and messaging over a shared directory."""

from .version import __version__
from .exceptions import (
    MatrixError,
    TransportError,
    InvalidAgentIdError,
    InvalidRoutingError,
    AgentNotFoundError,
    SelfSendError,
)
from .node import MatrixNode

__all__ = (
    "__version__",
    "MatrixError",
    "TransportError",
    "InvalidAgentIdError",
    "InvalidRoutingError",
    "AgentNotFoundError",
    "SelfSendError",
    "MatrixNode",
)
