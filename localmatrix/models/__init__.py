"""
Data model for LocalMatrix.
Event envelopes exchanged between agents, agent records kept in the
directory, read filters and the notification snapshot format.
"""

from .events import (
    EventType,
    TransportKind,
    TextContent,
    NoticeContent,
    Event,
    room_id_for,
    parse_room_id,
    now_ms,
    SCHEMA_VERSION,
)
from .agents import AgentStatus, AgentRegistration, AgentRecord
from .messages import MessageFilter, ReadResult
from .notifications import NotificationSummary, NotificationFile, ReadMarker

__all__ = (
    "EventType",
    "TransportKind",
    "TextContent",
    "NoticeContent",
    "Event",
    "room_id_for",
    "parse_room_id",
    "now_ms",
    "SCHEMA_VERSION",
    "AgentStatus",
    "AgentRegistration",
    "AgentRecord",
    "MessageFilter",
    "ReadResult",
    "NotificationSummary",
    "NotificationFile",
    "ReadMarker",
)
