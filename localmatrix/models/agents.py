"""Agent directory records."""

from __future__ import annotations

from enum import Enum
from pathlib import PurePath
from typing import Optional

from pydantic import BaseModel, Field

from .events import now_ms


class AgentStatus(str, Enum):
    """Derived liveness of an agent."""
    ONLINE = "online"
    STALE = "stale"
    OFFLINE = "offline"


class AgentRegistration(BaseModel):
    """Identity supplied once, at startup, to register an agent."""
    agent_id: str
    session_id: str
    project_dir: str
    hostname: str
    pid: int = Field(gt=0)


class AgentRecord(BaseModel):
    """An agent as stored in ``agents/{agent_id}.json``."""
    agent_id: str
    session_id: str
    hostname: str
    pid: int
    project_dir: str
    display_name: str
    registered_at: int
    last_heartbeat: int
    status: AgentStatus = AgentStatus.ONLINE

    @classmethod
    def from_registration(
        cls,
        registration: AgentRegistration,
        now: Optional[int] = None,
    ) -> "AgentRecord":
        now = now if now is not None else now_ms()
        return cls(
            agent_id=registration.agent_id,
            session_id=registration.session_id,
            hostname=registration.hostname,
            pid=registration.pid,
            project_dir=registration.project_dir,
            display_name=project_display_name(registration.project_dir),
            registered_at=now,
            last_heartbeat=now,
            status=AgentStatus.ONLINE,
        )

    def heartbeat_age(self, now: Optional[int] = None) -> int:
        """Milliseconds since the last heartbeat."""
        now = now if now is not None else now_ms()
        return now - self.last_heartbeat


def project_display_name(project_dir: str) -> str:
    """Last path component of the project directory."""
    name = PurePath(project_dir.rstrip("/\\") or project_dir).name
    return name or project_dir
