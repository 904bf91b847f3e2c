"""Transports: the only layer that touches the shared medium."""

from .base import AbstractTransport, MessageCallback

__all__ = ["AbstractTransport", "MessageCallback"]
