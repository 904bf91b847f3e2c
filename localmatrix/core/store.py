"""Outgoing envelope construction."""

from __future__ import annotations

import logging
from typing import Optional

from ..models import (
    Event,
    EventType,
    MessageFilter,
    NoticeContent,
    ReadResult,
    TextContent,
    TransportKind,
    room_id_for,
)
from ..transport import AbstractTransport

logger = logging.getLogger(__name__)


class MessageStore:
    """Builds events for ``self_agent_id`` and delegates to the transport.

    Holds no state of its own: the mailbox on disk is the only record of
    what was sent and received.
    """

    def __init__(
        self,
        transport: AbstractTransport,
        self_agent_id: str,
        project_dir: Optional[str] = None,
        transport_kind: TransportKind = TransportKind.FILESYSTEM,
    ) -> None:
        self._transport = transport
        self._self_id = self_agent_id
        self._project_dir = project_dir
        self._transport_kind = transport_kind

    def build_event(self, to: str, body: str, notice: bool = False) -> Event:
        """New event addressed to ``to``.

        Raises:
            InvalidRoutingError: If ``to`` is this agent.
            InvalidAgentIdError: If ``to`` is not a valid agent id.
        """
        if notice:
            event_type, content = EventType.NOTICE, NoticeContent(body=body)
        else:
            event_type, content = EventType.MESSAGE, TextContent(body=body)
        return Event(
            type=event_type,
            sender=self._self_id,
            room_id=room_id_for(self._self_id, to),
            content=content,
            project_dir=self._project_dir,
            transport=self._transport_kind,
        )

    async def send(self, to: str, body: str, notice: bool = False) -> Event:
        """Build and send a message; returns the event that was written."""
        event = self.build_event(to, body, notice=notice)
        await self._transport.send(event)
        logger.debug("Sent %s from %s to %s", event.event_id, self._self_id, to)
        return event

    async def read(self, filter: Optional[MessageFilter] = None) -> ReadResult:
        messages = await self._transport.read_messages(self._self_id, filter)
        return ReadResult(messages=messages, messages_returned=len(messages))
