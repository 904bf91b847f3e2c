"""InboxWatcher — push notification of new mailbox files."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Set

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ...utils.files import is_message_name
from .config import FilesystemTransportConfig

logger = logging.getLogger(__name__)

FileCallback = Callable[[Path], Awaitable[None]]


class _InboxHandler(FileSystemEventHandler):
    """Forwards final message names from the observer thread to the loop."""

    def __init__(self, watcher: "InboxWatcher", loop: asyncio.AbstractEventLoop) -> None:
        super().__init__()
        self._watcher = watcher
        self._loop = loop

    def on_created(self, ev: Any) -> None:
        if not ev.is_directory:
            self._forward(ev.src_path)

    def on_moved(self, ev: Any) -> None:
        # Atomic writes land as a rename of the temporary file.
        if not ev.is_directory:
            self._forward(ev.dest_path)

    def _forward(self, raw_path: Any) -> None:
        path = Path(raw_path if isinstance(raw_path, str) else raw_path.decode())
        if self._watcher.accepts(path.name):
            self._loop.call_soon_threadsafe(self._watcher.dispatch, path)


class InboxWatcher:
    """Watch one mailbox directory and report each new message file once.

    Files already present when the watcher starts are not reported; they
    are reachable through a regular read. With ``use_watchdog`` the
    directory is observed by a watchdog Observer (inotify, FSEvents...);
    otherwise, or if the observer cannot start, the directory is polled
    every ``poll_interval`` seconds.

    Args:
        inbox_dir: Mailbox directory to watch.
        on_file: Coroutine function called with the path of each new file.
        config: Transport configuration.
    """

    def __init__(
        self,
        inbox_dir: Path,
        on_file: FileCallback,
        config: FilesystemTransportConfig,
    ) -> None:
        self._dir = inbox_dir
        self._on_file = on_file
        self._config = config
        self._seen: Set[str] = set()
        self._observer: Optional[Observer] = None
        self._poll_task: Optional[asyncio.Task[None]] = None
        self._tasks: Set[asyncio.Task[None]] = set()

    @property
    def active(self) -> bool:
        """True while an observer or a polling task is watching."""
        if self._observer is not None:
            return self._observer.is_alive()
        return self._poll_task is not None and not self._poll_task.done()

    def accepts(self, name: str) -> bool:
        return is_message_name(name, self._config.temp_prefix)

    async def start(self) -> None:
        """Snapshot existing files and begin watching."""
        if self.active:
            return
        self._dir.mkdir(parents=True, exist_ok=True)
        self._seen = set(self._list_names())
        if self._config.use_watchdog and self._start_observer():
            # Catch files that landed between the snapshot and the observer.
            self.scan()
            return
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.debug(
            "Polling %s every %.2fs", self._dir, self._config.poll_interval
        )

    async def stop(self) -> None:
        """Stop watching and cancel in-flight callbacks."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=2.0)
            self._observer = None
            logger.debug("Watchdog observer stopped for %s", self._dir)
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()

    def scan(self) -> int:
        """Dispatch every unseen message file currently in the mailbox.

        Returns:
            Number of files dispatched.
        """
        names = self._list_names()
        dispatched = 0
        for name in names:
            if name not in self._seen:
                self._schedule(self._dir / name)
                dispatched += 1
        self._forget_missing(names)
        return dispatched

    def dispatch(self, path: Path) -> None:
        """Schedule the callback for ``path`` unless it was already reported."""
        if path.name in self._seen:
            return
        # Observer mode never rescans, so forget purged names here.
        self._forget_missing(self._list_names())
        self._schedule(path)

    async def drain(self) -> None:
        """Wait until every scheduled callback has completed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _list_names(self) -> list[str]:
        try:
            return sorted(
                entry.name for entry in self._dir.iterdir() if self.accepts(entry.name)
            )
        except FileNotFoundError:
            return []

    def _schedule(self, path: Path) -> None:
        self._seen.add(path.name)
        task = asyncio.get_running_loop().create_task(self._run(path))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _forget_missing(self, names: list[str]) -> None:
        """Drop seen names that were consumed or purged from the mailbox."""
        self._seen &= set(names)

    def _start_observer(self) -> bool:
        try:
            observer = Observer()
            observer.schedule(
                _InboxHandler(self, asyncio.get_running_loop()),
                str(self._dir),
                recursive=False,
            )
            observer.daemon = True
            observer.start()
        except Exception as exc:
            logger.warning("Failed to start watchdog: %s, falling back to polling", exc)
            return False
        self._observer = observer
        logger.info("Watchdog observer started for %s", self._dir)
        return True

    async def _poll_loop(self) -> None:
        while True:
            try:
                self.scan()
            except OSError as exc:
                logger.warning("Inbox poll error on %s: %s", self._dir, exc)
            await asyncio.sleep(self._config.poll_interval)

    async def _run(self, path: Path) -> None:
        try:
            await self._on_file(path)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Inbox callback failed for %s", path.name)
