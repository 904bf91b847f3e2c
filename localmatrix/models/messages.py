"""Read filters and results."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from .events import Event


class MessageFilter(BaseModel):
    """Narrow a mailbox read.

    ``since_ts`` is inclusive (milliseconds since the epoch). When
    ``limit`` is unset the transport applies its default cap.
    """
    since_ts: Optional[int] = None
    from_agent: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)

    def matches(self, event: Event) -> bool:
        if self.since_ts is not None and event.origin_server_ts < self.since_ts:
            return False
        if self.from_agent is not None and event.sender != self.from_agent:
            return False
        return True


class ReadResult(BaseModel):
    """Messages returned by a read, oldest first."""
    messages: List[Event] = Field(default_factory=list)
    messages_returned: int = 0
