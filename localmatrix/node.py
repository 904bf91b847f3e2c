"""One agent process wired end to end.

Plain parameters in, started components out: the node owns a
:class:`FilesystemTransport`, an :class:`AgentRegistry`, a
:class:`MessageStore` and a :class:`NotificationBuffer`, and runs their
lifecycle in the order the shared directory requires::

    start: transport -> register -> heartbeat -> empty snapshot
    stop:  heartbeat -> unregister -> transport
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import socket
from pathlib import Path
from typing import Any, List, Optional

from .core import AgentRegistry, MessageStore, NotificationBuffer
from .exceptions import AgentNotFoundError, SelfSendError
from .models import (
    AgentRecord,
    AgentRegistration,
    Event,
    MessageFilter,
    NotificationSummary,
    ReadResult,
)
from .transport.filesystem import FilesystemTransport, FilesystemTransportConfig
from .utils.identity import derive_agent_id, validate_agent_id

logger = logging.getLogger(__name__)


class MatrixNode:
    """Composition root for a single agent.

    Args:
        agent_id: Id of this agent.
        session_id: Session identifier recorded in the agent record.
        project_dir: Working directory advertised to other agents.
        config: Transport configuration.
        hostname: Host name (defaults to this machine's).
        pid: Process id recorded for liveness checks (defaults to ours).
    """

    def __init__(
        self,
        agent_id: str,
        *,
        session_id: Optional[str] = None,
        project_dir: Optional[str] = None,
        config: Optional[FilesystemTransportConfig] = None,
        hostname: Optional[str] = None,
        pid: Optional[int] = None,
    ) -> None:
        self.agent_id = validate_agent_id(agent_id)
        self.config = config or FilesystemTransportConfig()
        self.hostname = hostname or socket.gethostname()
        self.pid = pid or os.getpid()
        self.session_id = session_id or f"pid-{self.pid}"
        self.project_dir = str(Path(project_dir or os.getcwd()))

        self.transport = FilesystemTransport(
            self.agent_id, self.config, hostname=self.hostname
        )
        self.registry = AgentRegistry(
            self.transport,
            self.agent_id,
            heartbeat_interval=self.config.heartbeat_interval,
        )
        self.store = MessageStore(self.transport, self.agent_id, self.project_dir)
        self.notifications = NotificationBuffer(
            self.config.notifications_dir,
            self.agent_id,
            temp_prefix=self.config.temp_prefix,
        )
        self.transport.on_message(self.agent_id, self.notifications.push)
        self._started = False

    @classmethod
    def for_session(
        cls,
        session_id: Optional[str] = None,
        *,
        project_dir: Optional[str] = None,
        config: Optional[FilesystemTransportConfig] = None,
        hostname: Optional[str] = None,
        pid: Optional[int] = None,
    ) -> "MatrixNode":
        """Build a node whose agent id is derived from session and host."""
        hostname = hostname or socket.gethostname()
        pid = pid or os.getpid()
        agent_id = derive_agent_id(hostname, session_id=session_id, pid=pid)
        return cls(
            agent_id,
            session_id=session_id,
            project_dir=project_dir,
            config=config,
            hostname=hostname,
            pid=pid,
        )

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        await self.transport.start()
        try:
            await self.registry.register(
                AgentRegistration(
                    agent_id=self.agent_id,
                    session_id=self.session_id,
                    project_dir=self.project_dir,
                    hostname=self.hostname,
                    pid=self.pid,
                )
            )
            self.registry.start_heartbeat()
            await self.notifications.write_snapshot()
        except BaseException:
            # Half started: release the watch, stop() would not.
            await self.registry.stop_heartbeat()
            await self.transport.stop()
            raise
        self._started = True
        logger.info("Agent %s is up (data dir %s)", self.agent_id, self.config.data_dir)

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        await self.registry.unregister()
        await self.transport.stop()
        await self.notifications.close()
        logger.info("Agent %s is down", self.agent_id)

    async def send_message(self, to: str, body: str) -> Event:
        """Send ``body`` to a registered agent.

        Raises:
            SelfSendError: If ``to`` is this agent.
            AgentNotFoundError: If ``to`` is not in the agent directory.
        """
        if to == self.agent_id:
            raise SelfSendError(
                "Cannot send a message to yourself",
                payload={"agent_id": to},
            )
        agents = await self.registry.get_all()
        if not any(agent.agent_id == to for agent in agents):
            available = [a.agent_id for a in agents if a.agent_id != self.agent_id]
            raise AgentNotFoundError(
                f"Agent {to!r} not found. Available agents: "
                f"{', '.join(available) if available else 'none'}",
                payload={"agent_id": to, "available": available},
            )
        return await self.store.send(to, body)

    async def read_messages(
        self,
        limit: int = 20,
        since_ts: Optional[int] = None,
        from_agent: Optional[str] = None,
    ) -> ReadResult:
        """Read recent mail and mark everything as read."""
        result = await self.store.read(
            MessageFilter(limit=limit, since_ts=since_ts, from_agent=from_agent)
        )
        read_through = max(
            (event.origin_server_ts for event in result.messages), default=None
        )
        await self.notifications.flush(read_through=read_through)
        return result

    async def list_agents(self, refresh: bool = False) -> List[AgentRecord]:
        return await self.registry.get_all(refresh=refresh)

    def unread_count(self) -> int:
        return self.notifications.unread_count

    def unread_summaries(self) -> List[NotificationSummary]:
        return self.notifications.summaries

    async def run_until_signal(self) -> None:
        """Start, then block until SIGINT or SIGTERM, then stop."""
        stop_event = asyncio.Event()

        def _handle_signal() -> None:
            logger.info("Shutdown signal received, stopping %s", self.agent_id)
            stop_event.set()

        loop = asyncio.get_running_loop()
        signals = (signal.SIGINT, signal.SIGTERM)
        for sig in signals:
            loop.add_signal_handler(sig, _handle_signal)
        await self.start()
        try:
            await stop_event.wait()
        finally:
            for sig in signals:
                loop.remove_signal_handler(sig)
            await self.stop()

    async def __aenter__(self) -> "MatrixNode":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()
