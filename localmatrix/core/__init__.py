"""Stateful components built on the transport contract."""

from .registry import AgentRegistry
from .store import MessageStore
from .notifications import NotificationBuffer, WriteState

__all__ = [
    "AgentRegistry",
    "MessageStore",
    "NotificationBuffer",
    "WriteState",
]
