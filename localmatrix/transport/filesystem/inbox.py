"""InboxManager — per-agent mailboxes as directories of JSON files."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ...exceptions import TransportError
from ...models import Event, MessageFilter
from ...utils.files import is_message_name, read_text, remove_file, write_atomic
from ...utils.identity import is_valid_agent_id
from .config import FilesystemTransportConfig

logger = logging.getLogger(__name__)


def format_timestamp(ts_ms: int) -> str:
    """Sortable UTC timestamp with millisecond precision: ``YYYYMMDDHHMMSSfff``."""
    moment = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)
    return f"{moment:%Y%m%d%H%M%S}{ts_ms % 1000:03d}"


class InboxManager:
    """Mailbox storage for point-to-point messages.

    Each message is one file in ``messages/<agent_id>/`` named
    ``<timestamp>-<event_id>.json``, so lexicographic order is
    chronological. Delivery is atomic via write-then-rename; reads are
    non-destructive and skip any file that cannot be decoded.

    Args:
        messages_dir: Root of all mailboxes.
        config: Transport configuration.
    """

    def __init__(self, messages_dir: Path, config: FilesystemTransportConfig) -> None:
        self._dir = messages_dir
        self._config = config

    def inbox_path(self, agent_id: str) -> Path:
        """Mailbox directory of ``agent_id`` (validated)."""
        return self._config.inbox_dir(agent_id)

    def setup(self, agent_id: str) -> Path:
        """Create the mailbox directory of ``agent_id``."""
        path = self.inbox_path(agent_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def message_filename(event: Event) -> str:
        """File name for ``event`` inside a mailbox.

        Raises:
            TransportError: If the event id is not a safe file name part.
        """
        if not is_valid_agent_id(event.event_id):
            raise TransportError(
                f"Unsafe event id {event.event_id!r}",
                payload={"event_id": event.event_id},
            )
        return f"{format_timestamp(event.origin_server_ts)}-{event.event_id}.json"

    async def deliver(self, recipient_id: str, event: Event) -> Path:
        """Write ``event`` into the recipient's mailbox atomically.

        Returns:
            Final path of the message file.
        """
        target_dir = self.setup(recipient_id)
        final_path = target_dir / self.message_filename(event)
        await write_atomic(final_path, event.to_json(), temp_prefix=self._config.temp_prefix)
        logger.debug(
            "Delivered %s from %s to %s",
            event.event_id,
            event.sender,
            recipient_id,
        )
        return final_path

    def list_files(self, agent_id: str) -> List[Path]:
        """Message files of a mailbox in file name (chronological) order."""
        inbox = self.inbox_path(agent_id)
        try:
            names = sorted(
                entry.name
                for entry in inbox.iterdir()
                if is_message_name(entry.name, self._config.temp_prefix)
            )
        except FileNotFoundError:
            return []
        return [inbox / name for name in names]

    async def load(self, path: Path) -> Optional[Event]:
        """Decode one message file, None when missing or malformed."""
        try:
            raw = await read_text(path)
            if raw is None:
                return None
            return Event.from_json(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
            logger.debug("Skipping message file %s: %s", path, exc)
            return None

    async def read(
        self,
        agent_id: str,
        filter: Optional[MessageFilter] = None,
    ) -> List[Event]:
        """Return the most recent matching messages, oldest first.

        At most ``filter.limit`` (or the configured default) messages are
        returned; older matches stay in the mailbox untouched.
        """
        filter = filter or MessageFilter()
        messages: List[Event] = []
        for path in self.list_files(agent_id):
            event = await self.load(path)
            if event is None:
                continue
            if filter.matches(event):
                messages.append(event)
        limit = filter.limit or self._config.read_limit
        return messages[-limit:]

    async def purge(self, agent_id: str) -> int:
        """Delete every file in a mailbox and the mailbox itself.

        Returns:
            Number of files removed.
        """
        inbox = self.inbox_path(agent_id)
        if not inbox.exists():
            return 0
        removed = 0
        for entry in inbox.iterdir():
            if entry.is_file() and remove_file(entry):
                removed += 1
        try:
            inbox.rmdir()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove mailbox %s: %s", inbox, exc)
        logger.info("Purged %d message(s) from %s", removed, agent_id)
        return removed
