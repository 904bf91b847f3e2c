"""NotificationBuffer — unread summaries and the debounced snapshot file."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import List, Optional, Set

from pydantic import ValidationError

from ..models import Event, NotificationFile, NotificationSummary, ReadMarker
from ..models.notifications import DEFAULT_PREVIEW_LENGTH, READ_MARKERS_DIR
from ..utils.files import TEMP_PREFIX, read_text, write_atomic
from ..utils.identity import validate_agent_id

logger = logging.getLogger(__name__)


async def load_read_marker(path: Path) -> Optional[ReadMarker]:
    """Read marker at ``path``, None when missing or unreadable."""
    try:
        raw = await read_text(path)
    except OSError as exc:
        logger.debug("Cannot read marker %s: %s", path, exc)
        return None
    if raw is None:
        return None
    try:
        return ReadMarker.model_validate_json(raw)
    except ValidationError as exc:
        logger.debug("Ignoring malformed read marker %s: %s", path, exc)
        return None


async def save_read_marker(
    path: Path,
    agent_id: str,
    read_through: int,
    temp_prefix: str = TEMP_PREFIX,
) -> int:
    """Advance the read marker at ``path``; it never moves backwards.

    Returns:
        The marker value now on disk.

    Raises:
        OSError: If the marker cannot be written.
    """
    current = await load_read_marker(path)
    if current is not None and current.read_through >= read_through:
        return current.read_through
    path.parent.mkdir(parents=True, exist_ok=True)
    marker = ReadMarker(agent_id=agent_id, read_through=read_through)
    await write_atomic(path, marker.model_dump_json(indent=2), temp_prefix=temp_prefix)
    return read_through


class WriteState(str, Enum):
    """State of the debounced snapshot writer."""
    IDLE = "idle"
    SCHEDULED = "scheduled"
    FIRED = "fired"


class NotificationBuffer:
    """Unread-mail bookkeeping for the owning agent.

    Every pushed event becomes a :class:`NotificationSummary`; the
    snapshot file ``notifications/<agent_id>.json`` is rewritten at most
    once per ``debounce`` window. The first push of a burst schedules the
    write and later pushes join it without pushing the deadline back.

    The snapshot carries the exact unread count but embeds only the
    ``max_summaries`` most recent summaries. The complete unread list
    stays in memory until :meth:`flush`.

    Mail can also be read by another process (the ``inbox`` command). That
    reader advances the read marker ``notifications/read/<agent_id>.json``;
    the buffer picks the marker up before every snapshot write and drops
    summaries of mail sent at or before it.

    Args:
        notifications_dir: Directory holding snapshot files.
        self_agent_id: Owning agent.
        debounce: Seconds between the first push and the write.
        max_summaries: Cap on summaries embedded in the snapshot.
        preview_length: Characters of body kept in each preview.
        temp_prefix: Reserved prefix for temporary files.
    """

    def __init__(
        self,
        notifications_dir: Path,
        self_agent_id: str,
        debounce: float = 0.2,
        max_summaries: int = 10,
        preview_length: int = DEFAULT_PREVIEW_LENGTH,
        temp_prefix: str = TEMP_PREFIX,
    ) -> None:
        self._dir = notifications_dir
        self._agent_id = validate_agent_id(self_agent_id)
        self._debounce = debounce
        self._max_summaries = max_summaries
        self._preview_length = preview_length
        self._temp_prefix = temp_prefix
        self._unread: List[NotificationSummary] = []
        self._state = WriteState.IDLE
        self._pending: Optional[asyncio.Task[None]] = None
        self._tasks: Set[asyncio.Task[None]] = set()
        self._write_lock = asyncio.Lock()
        self._read_through = 0

    @property
    def path(self) -> Path:
        return self._dir / f"{self._agent_id}.json"

    @property
    def marker_path(self) -> Path:
        return self._dir / READ_MARKERS_DIR / f"{self._agent_id}.json"

    @property
    def read_through(self) -> int:
        """Send time (ms) up to which mail is known to be read."""
        return self._read_through

    @property
    def state(self) -> WriteState:
        return self._state

    @property
    def unread_count(self) -> int:
        return len(self._unread)

    @property
    def summaries(self) -> List[NotificationSummary]:
        """Copy of every unread summary, oldest first."""
        return list(self._unread)

    def push(self, event: Event) -> Optional[NotificationSummary]:
        """Record an unread event and schedule a snapshot write.

        Events sent at or before the read marker were already read and
        are ignored (None is returned).
        """
        if event.origin_server_ts <= self._read_through:
            logger.debug("Ignoring %s: already read", event.event_id)
            return None
        summary = NotificationSummary.from_event(event, self._preview_length)
        self._unread.append(summary)
        self._schedule()
        return summary

    async def flush(self, read_through: Optional[int] = None) -> List[NotificationSummary]:
        """Drain the unread list and write the empty snapshot now.

        Args:
            read_through: Send time of the newest message just read, if
                any. Advances the read marker so late deliveries of the
                same mail are not counted again.

        Returns:
            The summaries that were unread, oldest first.
        """
        await self._cancel_pending()
        if read_through is not None:
            await self.mark_read(read_through)
        drained, self._unread = self._unread, []
        self._state = WriteState.IDLE
        await self.write_snapshot()
        return drained

    async def mark_read(self, read_through: int) -> None:
        """Advance the read marker in memory and on disk.

        Failures to persist the marker are logged, never raised.
        """
        self._apply_read_marker(read_through)
        try:
            await save_read_marker(
                self.marker_path,
                self._agent_id,
                self._read_through,
                temp_prefix=self._temp_prefix,
            )
        except OSError as exc:
            logger.warning("Could not write read marker %s: %s", self.marker_path, exc)

    def snapshot(self) -> NotificationFile:
        recent = self._unread[-self._max_summaries:] if self._max_summaries else []
        return NotificationFile(
            agent_id=self._agent_id,
            unread_count=len(self._unread),
            summaries=recent,
        )

    async def write_snapshot(self) -> bool:
        """Atomically replace the snapshot file with the current state.

        The on-disk read marker is applied first, so mail read by another
        process drops out of the snapshot. Write failures are logged,
        never raised: pollers simply see the previous snapshot.

        Returns:
            True if the file was written.
        """
        async with self._write_lock:
            marker = await load_read_marker(self.marker_path)
            if marker is not None:
                self._apply_read_marker(marker.read_through)
            data = self.snapshot().model_dump_json(indent=2)
            try:
                self._dir.mkdir(parents=True, exist_ok=True)
                await write_atomic(self.path, data, temp_prefix=self._temp_prefix)
            except OSError as exc:
                logger.warning("Could not write notification file %s: %s", self.path, exc)
                return False
        logger.debug(
            "Notification snapshot for %s: %d unread", self._agent_id, len(self._unread)
        )
        return True

    async def close(self) -> None:
        """Write any scheduled snapshot now and wait for writers to finish."""
        if self._state is WriteState.SCHEDULED:
            await self._cancel_pending()
            self._state = WriteState.IDLE
            await self.write_snapshot()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Debounce state machine: IDLE -> SCHEDULED -> FIRED -> IDLE
    # ------------------------------------------------------------------

    def _schedule(self) -> None:
        if self._state is WriteState.SCHEDULED:
            return
        self._state = WriteState.SCHEDULED
        task = asyncio.get_running_loop().create_task(self._delayed_write())
        self._pending = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _delayed_write(self) -> None:
        await asyncio.sleep(self._debounce)
        self._pending = None
        self._state = WriteState.FIRED
        await self.write_snapshot()
        # A push during the write has already scheduled the next one.
        if self._state is WriteState.FIRED:
            self._state = WriteState.IDLE

    async def _cancel_pending(self) -> None:
        task, self._pending = self._pending, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _apply_read_marker(self, read_through: int) -> None:
        if read_through <= self._read_through:
            return
        self._read_through = read_through
        before = len(self._unread)
        self._unread = [s for s in self._unread if s.sent_at > read_through]
        if len(self._unread) != before:
            logger.debug(
                "%d summaries for %s marked read",
                before - len(self._unread),
                self._agent_id,
            )
