"""Notification snapshot format read by external pollers."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from ..utils.identity import display_name_for
from .events import Event, now_ms

DEFAULT_PREVIEW_LENGTH = 120

# Read markers live in their own subdirectory so they can never collide
# with a snapshot name, whatever the agent id.
READ_MARKERS_DIR = "read"


class NotificationSummary(BaseModel):
    """Summary of one unread event."""
    from_agent: str
    from_display: str
    from_project_dir: str
    preview: str
    received_at: int
    event_id: str
    sent_at: int = 0

    @classmethod
    def from_event(
        cls,
        event: Event,
        preview_length: int = DEFAULT_PREVIEW_LENGTH,
        received_at: Optional[int] = None,
    ) -> "NotificationSummary":
        body = event.body
        return cls(
            from_agent=event.sender,
            from_display=display_name_for(event.sender),
            from_project_dir=event.project_dir or "unknown",
            preview=body[:preview_length] if body is not None else "[non-text event]",
            received_at=received_at if received_at is not None else now_ms(),
            event_id=event.event_id,
            sent_at=event.origin_server_ts,
        )


class NotificationFile(BaseModel):
    """Content of ``notifications/{agent_id}.json``.

    ``unread_count`` is exact; ``summaries`` is a capped preview.
    """
    generated_at: int = Field(default_factory=now_ms)
    agent_id: str
    unread_count: int = 0
    summaries: List[NotificationSummary] = Field(default_factory=list)

    def unread_after(self, read_through: int) -> "NotificationFile":
        """Copy without the summaries of mail sent at or before ``read_through``."""
        kept = [s for s in self.summaries if s.sent_at > read_through]
        if len(kept) == len(self.summaries):
            return self
        # Embedded summaries are the most recent ones, so every summary
        # left out of the preview is older and has been read too.
        return self.model_copy(update={"unread_count": len(kept), "summaries": kept})


class ReadMarker(BaseModel):
    """Content of ``notifications/read/{agent_id}.json``.

    Every message sent at or before ``read_through`` (ms since the epoch)
    has been read, whichever process read it.
    """
    agent_id: str
    read_through: int = Field(ge=0)
    updated_at: int = Field(default_factory=now_ms)
