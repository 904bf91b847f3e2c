"""Configuration model for FilesystemTransport."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ...models.notifications import READ_MARKERS_DIR
from ...utils.files import TEMP_PREFIX
from ...utils.identity import validate_agent_id


def _default_data_dir() -> Path:
    return Path.home() / ".localmatrix"


class FilesystemTransportConfig(BaseModel):
    """Pydantic v2 configuration for the FilesystemTransport.

    ``data_dir`` is resolved to an absolute path and ``stale_threshold``
    defaults to three heartbeat intervals.
    """

    data_dir: Path = Field(
        default_factory=_default_data_dir,
        description="Root directory holding agents/, messages/ and notifications/.",
    )
    heartbeat_interval: float = Field(
        default=30.0,
        gt=0,
        description="Heartbeat interval in seconds.",
    )
    stale_threshold: Optional[float] = Field(
        default=None,
        gt=0,
        description="Heartbeat age in seconds after which an agent is stale (default 3x interval).",
    )
    read_limit: int = Field(
        default=50,
        ge=1,
        description="Default cap on messages returned by a read.",
    )
    use_watchdog: bool = Field(
        default=True,
        description="Watch the inbox with watchdog; False selects the polling fallback.",
    )
    poll_interval: float = Field(
        default=0.5,
        gt=0,
        description="Polling fallback interval in seconds.",
    )
    temp_prefix: str = Field(
        default=TEMP_PREFIX,
        min_length=1,
        description="Reserved file name prefix for in-flight writes.",
    )

    @model_validator(mode="after")
    def resolve_defaults(self) -> "FilesystemTransportConfig":
        """Resolve data_dir to an absolute path and derive the stale threshold."""
        object.__setattr__(self, "data_dir", Path(self.data_dir).expanduser().resolve())
        if self.stale_threshold is None:
            object.__setattr__(self, "stale_threshold", self.heartbeat_interval * 3)
        return self

    @property
    def agents_dir(self) -> Path:
        return self.data_dir / "agents"

    @property
    def messages_dir(self) -> Path:
        return self.data_dir / "messages"

    @property
    def notifications_dir(self) -> Path:
        return self.data_dir / "notifications"

    def inbox_dir(self, agent_id: str) -> Path:
        """Mailbox directory of ``agent_id`` (validated)."""
        return self.messages_dir / validate_agent_id(agent_id)

    def notification_file(self, agent_id: str) -> Path:
        """Notification snapshot path of ``agent_id`` (validated)."""
        return self.notifications_dir / f"{validate_agent_id(agent_id)}.json"

    def read_marker_file(self, agent_id: str) -> Path:
        """Read marker path of ``agent_id`` (validated)."""
        return (
            self.notifications_dir
            / READ_MARKERS_DIR
            / f"{validate_agent_id(agent_id)}.json"
        )
