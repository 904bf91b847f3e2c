"""Abstract base class for all agent transports."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional, Union

from ..models import AgentRecord, AgentRegistration, Event, MessageFilter

MessageCallback = Callable[[Event], Union[None, Awaitable[None]]]


class AbstractTransport(ABC):
    """Abstract base for all agent transports.

    Core components (registry, message store, notification buffer)
    depend only on this interface, never on a concrete transport.
    ``FilesystemTransport`` is the single-host implementation; socket or
    homeserver based transports are pure additions behind it.

    Supports async context manager for lifecycle management::

        async with MyTransport(...) as t:
            await t.send(event)
    """

    @abstractmethod
    async def start(self) -> None:
        """Prepare storage and begin listening for inbound events."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop listening. Must be idempotent."""
        ...

    @abstractmethod
    async def send(self, event: Event) -> None:
        """Send an event.

        Returns once the event is durably written for the recipient,
        which does not mean it was read.
        """
        ...

    @abstractmethod
    async def register_agent(self, registration: AgentRegistration) -> AgentRecord:
        """Register an agent and return its stored record."""
        ...

    @abstractmethod
    async def unregister_agent(self, agent_id: str) -> None:
        """Unregister an agent. Must be idempotent."""
        ...

    @abstractmethod
    async def discover_agents(self) -> List[AgentRecord]:
        """Return all currently discoverable agents with derived status."""
        ...

    @abstractmethod
    async def read_messages(
        self,
        agent_id: str,
        filter: Optional[MessageFilter] = None,
    ) -> List[Event]:
        """Read an agent's messages, oldest first, optionally filtered."""
        ...

    @abstractmethod
    async def heartbeat(self, agent_id: str) -> None:
        """Refresh an agent's liveness timestamp."""
        ...

    @abstractmethod
    def is_healthy(self) -> bool:
        """Whether the transport is started and listening."""
        ...

    @abstractmethod
    def on_message(self, agent_id: str, callback: MessageCallback) -> None:
        """Subscribe to inbound events for an agent (one callback per id)."""
        ...

    async def __aenter__(self) -> "AbstractTransport":
        """Start the transport and return self."""
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Stop the transport on context exit."""
        await self.stop()
