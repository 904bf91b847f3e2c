"""Cached view of the agent directory, plus the heartbeat loop."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional

from ..models import AgentRecord, AgentRegistration
from ..transport import AbstractTransport

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Agent directory view for one agent process.

    ``get_all`` results are cached for ``cache_ttl`` seconds so callers
    may ask freely without rescanning the directory every time. The
    heartbeat loop runs as a background task: a failed heartbeat is
    logged and the loop carries on, since the worst outcome is that this
    agent briefly appears stale to others.

    Args:
        transport: Transport holding the agent directory.
        self_agent_id: Id of the agent owning this registry.
        heartbeat_interval: Seconds between heartbeats.
        cache_ttl: Seconds a discovery result stays valid.
    """

    def __init__(
        self,
        transport: AbstractTransport,
        self_agent_id: str,
        heartbeat_interval: float = 30.0,
        cache_ttl: float = 5.0,
    ) -> None:
        self._transport = transport
        self._self_id = self_agent_id
        self._interval = heartbeat_interval
        self._cache_ttl = cache_ttl
        self._cache: Optional[List[AgentRecord]] = None
        self._cache_at: float = 0.0
        self._heartbeat_task: Optional[asyncio.Task[None]] = None

    @property
    def self_agent_id(self) -> str:
        return self._self_id

    @property
    def heartbeat_running(self) -> bool:
        return self._heartbeat_task is not None and not self._heartbeat_task.done()

    async def register(self, registration: AgentRegistration) -> AgentRecord:
        record = await self._transport.register_agent(registration)
        self.invalidate()
        return record

    async def unregister(self, agent_id: Optional[str] = None) -> None:
        """Stop heartbeating, then remove the record. Idempotent."""
        await self.stop_heartbeat()
        await self._transport.unregister_agent(agent_id or self._self_id)
        self.invalidate()

    async def get_all(self, refresh: bool = False) -> List[AgentRecord]:
        """All discoverable agents, served from cache while it is fresh."""
        now = time.monotonic()
        if (
            not refresh
            and self._cache is not None
            and now - self._cache_at < self._cache_ttl
        ):
            return list(self._cache)
        agents = await self._transport.discover_agents()
        self._cache = agents
        self._cache_at = now
        return list(agents)

    async def get_self(self) -> Optional[AgentRecord]:
        for agent in await self.get_all():
            if agent.agent_id == self._self_id:
                return agent
        return None

    def invalidate(self) -> None:
        """Drop the cached discovery result."""
        self._cache = None
        self._cache_at = 0.0

    def start_heartbeat(self) -> None:
        """Start the heartbeat loop if it is not already running."""
        if self.heartbeat_running:
            return
        self._heartbeat_task = asyncio.create_task(
            self._heartbeat_loop(), name=f"heartbeat:{self._self_id}"
        )
        logger.debug(
            "Heartbeat started for %s every %.1fs", self._self_id, self._interval
        )

    async def stop_heartbeat(self) -> None:
        if self._heartbeat_task is None:
            return
        task, self._heartbeat_task = self._heartbeat_task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Heartbeat stopped for %s", self._self_id)

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._transport.heartbeat(self._self_id)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Heartbeat failed for %s: %s", self._self_id, exc)
