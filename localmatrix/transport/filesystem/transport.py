"""FilesystemTransport — single-host transport over a shared directory."""

from __future__ import annotations

import inspect
import logging
import socket
from pathlib import Path
from typing import Dict, List, Optional

from ...exceptions import InvalidRoutingError, TransportError
from ...models import AgentRecord, AgentRegistration, Event, MessageFilter, parse_room_id
from ...utils.files import remove_file
from ...utils.identity import validate_agent_id
from ..base import AbstractTransport, MessageCallback
from .config import FilesystemTransportConfig
from .directory import AgentDirectory
from .inbox import InboxManager
from .watcher import InboxWatcher

logger = logging.getLogger(__name__)


class FilesystemTransport(AbstractTransport):
    """Agent transport backed by the local filesystem.

    Zero external services: agents on the same machine discover each
    other through ``agents/`` and exchange events through per-agent
    mailboxes under ``messages/``. Arrival of new mail in this agent's
    own mailbox is pushed to the subscribed callback.

    Layout under ``config.data_dir``::

        agents/<agent_id>.json
        messages/<agent_id>/<timestamp>-<event_id>.json
        notifications/<agent_id>.json

    Args:
        agent_id: Id of the agent this transport listens for.
        config: Transport configuration.
        hostname: Host name for same-host liveness checks.
    """

    def __init__(
        self,
        agent_id: str,
        config: Optional[FilesystemTransportConfig] = None,
        hostname: Optional[str] = None,
    ) -> None:
        self._agent_id = validate_agent_id(agent_id)
        self._config = config or FilesystemTransportConfig()
        self._hostname = hostname or socket.gethostname()

        self._directory = AgentDirectory(
            self._config.agents_dir, self._config, hostname=self._hostname
        )
        self._inbox = InboxManager(self._config.messages_dir, self._config)
        self._watcher = InboxWatcher(
            self._inbox.inbox_path(self._agent_id),
            self._handle_incoming,
            self._config,
        )
        self._callbacks: Dict[str, MessageCallback] = {}
        self._started = False
        self._healthy = False

    @property
    def agent_id(self) -> str:
        """The agent whose mailbox this transport watches."""
        return self._agent_id

    @property
    def config(self) -> FilesystemTransportConfig:
        return self._config

    @property
    def directory(self) -> AgentDirectory:
        return self._directory

    @property
    def inbox(self) -> InboxManager:
        return self._inbox

    @property
    def watcher(self) -> InboxWatcher:
        return self._watcher

    async def start(self) -> None:
        """Create the directory layout and start watching our mailbox."""
        if self._started:
            return
        for path in (
            self._config.agents_dir,
            self._config.messages_dir,
            self._config.notifications_dir,
        ):
            path.mkdir(parents=True, exist_ok=True)
        self._inbox.setup(self._agent_id)
        await self._watcher.start()
        self._started = True
        self._healthy = self._watcher.active
        logger.info(
            "FilesystemTransport started for %s at %s",
            self._agent_id,
            self._config.data_dir,
        )

    async def stop(self) -> None:
        """Stop watching. Safe to call repeatedly."""
        self._healthy = False
        if not self._started:
            return
        self._started = False
        await self._watcher.stop()
        logger.info("FilesystemTransport stopped for %s", self._agent_id)

    def is_healthy(self) -> bool:
        return self._healthy and self._watcher.active

    async def send(self, event: Event) -> None:
        """Deliver ``event`` into the mailbox of the other room participant.

        Raises:
            TransportError: If the transport was not started.
            InvalidRoutingError: If the room id is malformed or the sender
                is not one of its participants.
            InvalidAgentIdError: If the recipient id is unsafe.
        """
        if not self._started:
            raise TransportError(
                "FilesystemTransport is not started",
                payload={"agent_id": self._agent_id},
            )
        recipient = self.resolve_recipient(event)
        await self._inbox.deliver(recipient, event)

    @staticmethod
    def resolve_recipient(event: Event) -> str:
        """The participant of ``event.room_id`` that is not the sender."""
        first, second = parse_room_id(event.room_id)
        if event.sender == first:
            recipient = second
        elif event.sender == second:
            recipient = first
        else:
            raise InvalidRoutingError(
                f"Sender {event.sender!r} is not a participant of {event.room_id!r}",
                payload={"room_id": event.room_id, "sender": event.sender},
            )
        return validate_agent_id(recipient)

    async def register_agent(self, registration: AgentRegistration) -> AgentRecord:
        return await self._directory.register(registration)

    async def unregister_agent(self, agent_id: str) -> None:
        await self._directory.unregister(agent_id)

    async def discover_agents(self) -> List[AgentRecord]:
        return await self._directory.discover()

    async def heartbeat(self, agent_id: str) -> None:
        await self._directory.heartbeat(agent_id)

    async def read_messages(
        self,
        agent_id: str,
        filter: Optional[MessageFilter] = None,
    ) -> List[Event]:
        return await self._inbox.read(agent_id, filter)

    def on_message(self, agent_id: str, callback: MessageCallback) -> None:
        """Subscribe ``callback`` to new mail for ``agent_id``.

        A later subscription for the same id replaces the earlier one.
        Only this transport's own mailbox is watched.
        """
        validate_agent_id(agent_id)
        if agent_id != self._agent_id:
            logger.debug(
                "Callback for %s registered on transport watching %s",
                agent_id,
                self._agent_id,
            )
        self._callbacks[agent_id] = callback

    async def purge_mailbox(self, agent_id: Optional[str] = None) -> int:
        """Delete every message in a mailbox (our own by default)."""
        return await self._inbox.purge(agent_id or self._agent_id)

    def remove_notifications(self, agent_id: Optional[str] = None) -> bool:
        """Delete an agent's notification snapshot and read marker.

        Returns:
            True if the snapshot file existed.
        """
        agent_id = agent_id or self._agent_id
        remove_file(self._config.read_marker_file(agent_id))
        return remove_file(self._config.notification_file(agent_id))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _handle_incoming(self, path: Path) -> None:
        event = await self._inbox.load(path)
        if event is None:
            return
        callback = self._callbacks.get(self._agent_id)
        if callback is None:
            logger.debug("No subscriber for %s, leaving %s unread", self._agent_id, path.name)
            return
        try:
            result = callback(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(
                "Message callback failed for %s (event %s)",
                self._agent_id,
                event.event_id,
            )
