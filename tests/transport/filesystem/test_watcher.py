"""Tests for InboxWatcher — new-file notification."""

import asyncio

import pytest

from localmatrix.transport.filesystem import FilesystemTransportConfig, InboxWatcher


@pytest.fixture
def mailbox(fs_config):
    path = fs_config.inbox_dir("b")
    path.mkdir(parents=True)
    return path


@pytest.fixture
async def watcher(mailbox, fs_config):
    seen = []

    async def _on_file(path):
        seen.append(path.name)

    w = InboxWatcher(mailbox, _on_file, fs_config)
    w.reported = seen
    await w.start()
    yield w
    await w.stop()


class TestInboxWatcher:
    @pytest.mark.asyncio
    async def test_polling_backend_is_active(self, watcher):
        assert watcher.active

    @pytest.mark.asyncio
    async def test_new_file_dispatched_once(self, watcher, mailbox):
        (mailbox / "0001-a.json").write_text("{}")
        watcher.scan()
        watcher.scan()
        await watcher.drain()
        assert watcher.reported == ["0001-a.json"]

    @pytest.mark.asyncio
    async def test_existing_files_not_reported(self, mailbox, fs_config):
        (mailbox / "0000-old.json").write_text("{}")
        seen = []

        async def _on_file(path):
            seen.append(path.name)

        w = InboxWatcher(mailbox, _on_file, fs_config)
        await w.start()
        try:
            assert w.scan() == 0
            await w.drain()
            assert seen == []
        finally:
            await w.stop()

    @pytest.mark.asyncio
    async def test_temp_and_non_json_ignored(self, watcher, mailbox):
        (mailbox / ".tmp-1-abc").write_text("{}")
        (mailbox / "notes.txt").write_text("x")
        (mailbox / ".hidden.json").write_text("{}")
        assert watcher.scan() == 0
        await watcher.drain()
        assert watcher.reported == []

    @pytest.mark.asyncio
    async def test_callback_errors_do_not_stop_watching(self, mailbox, fs_config):
        calls = []

        async def _on_file(path):
            calls.append(path.name)
            raise RuntimeError("boom")

        w = InboxWatcher(mailbox, _on_file, fs_config)
        await w.start()
        try:
            (mailbox / "1.json").write_text("{}")
            w.scan()
            await w.drain()
            (mailbox / "2.json").write_text("{}")
            w.scan()
            await w.drain()
        finally:
            await w.stop()
        assert calls == ["1.json", "2.json"]

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, watcher):
        await watcher.stop()
        await watcher.stop()
        assert not watcher.active

    @pytest.mark.asyncio
    async def test_polling_picks_up_files(self, mailbox, tmp_path):
        config = FilesystemTransportConfig(data_dir=tmp_path, use_watchdog=False, poll_interval=0.02)
        arrived = asyncio.Event()

        async def _on_file(path):
            arrived.set()

        w = InboxWatcher(mailbox, _on_file, config)
        await w.start()
        try:
            (mailbox / "1.json").write_text("{}")
            await asyncio.wait_for(arrived.wait(), timeout=2.0)
        finally:
            await w.stop()

    @pytest.mark.asyncio
    async def test_watchdog_backend_reports_renames(self, mailbox, tmp_path):
        """Atomic writes arrive as a rename from a temp name."""
        config = FilesystemTransportConfig(data_dir=tmp_path, use_watchdog=True, poll_interval=0.05)
        arrived = asyncio.Event()
        names = []

        async def _on_file(path):
            names.append(path.name)
            arrived.set()

        w = InboxWatcher(mailbox, _on_file, config)
        await w.start()
        try:
            assert w.active
            tmp = mailbox / ".tmp-1-xyz"
            tmp.write_text("{}")
            tmp.replace(mailbox / "0001-evt.json")
            await asyncio.wait_for(arrived.wait(), timeout=5.0)
        finally:
            await w.stop()
        assert names == ["0001-evt.json"]

    @pytest.mark.asyncio
    async def test_dispatch_forgets_purged_names(self, mailbox, fs_config):
        """Without rescans, names of deleted files still drop out of the seen set."""
        (mailbox / "0000-old.json").write_text("{}")

        async def _on_file(path):
            pass

        w = InboxWatcher(mailbox, _on_file, fs_config)
        await w.start()
        try:
            assert w._seen == {"0000-old.json"}
            (mailbox / "0000-old.json").unlink()
            (mailbox / "0001-new.json").write_text("{}")
            w.dispatch(mailbox / "0001-new.json")
            assert w._seen == {"0001-new.json"}
            await w.drain()
        finally:
            await w.stop()
