"""Tests for NotificationBuffer — summaries and the debounced snapshot."""

import asyncio
import json

import pytest

from localmatrix.core import NotificationBuffer, WriteState
from localmatrix.core.notifications import load_read_marker, save_read_marker
from localmatrix.models import Event, NotificationFile, TextContent, room_id_for


def _event(body="hello", sender="session-abcdef12@host", ts=None):
    kwargs = {"origin_server_ts": ts} if ts is not None else {}
    return Event(
        sender=sender,
        room_id=room_id_for(sender, "me"),
        content=TextContent(body=body),
        project_dir="/work/beta",
        **kwargs,
    )


def _load(buffer):
    return NotificationFile.model_validate_json(buffer.path.read_text())


@pytest.fixture
def buffer(tmp_path):
    return NotificationBuffer(tmp_path / "notifications", "me", debounce=0.05)


class TestNotificationBuffer:
    @pytest.mark.asyncio
    async def test_summary_fields(self, buffer):
        event = _event("x" * 300)
        summary = buffer.push(event)
        assert summary.from_agent == "session-abcdef12@host"
        assert summary.from_display == "abcdef12"
        assert summary.from_project_dir == "/work/beta"
        assert len(summary.preview) == 120
        assert summary.event_id == event.event_id
        assert buffer.unread_count == 1
        await buffer.close()

    @pytest.mark.asyncio
    async def test_debounced_write(self, buffer):
        buffer.push(_event())
        assert buffer.state is WriteState.SCHEDULED
        assert not buffer.path.exists()
        await asyncio.sleep(0.15)
        assert buffer.state is WriteState.IDLE
        snapshot = _load(buffer)
        assert snapshot.agent_id == "me"
        assert snapshot.unread_count == 1

    @pytest.mark.asyncio
    async def test_burst_coalesces_into_one_write(self, buffer, monkeypatch):
        writes = []
        original = buffer.write_snapshot

        async def _counting():
            writes.append(buffer.unread_count)
            return await original()

        monkeypatch.setattr(buffer, "write_snapshot", _counting)
        for i in range(5):
            buffer.push(_event(f"m{i}"))
            await asyncio.sleep(0.005)
        await asyncio.sleep(0.15)
        assert writes == [5]
        assert _load(buffer).unread_count == 5

    @pytest.mark.asyncio
    async def test_pending_timer_not_reset(self, tmp_path):
        buffer = NotificationBuffer(tmp_path, "me", debounce=0.1)
        buffer.push(_event("first"))
        await asyncio.sleep(0.07)
        buffer.push(_event("second"))
        await asyncio.sleep(0.06)
        # Written at ~0.1s after the first push, not 0.1s after the second.
        assert _load(buffer).unread_count == 2

    @pytest.mark.asyncio
    async def test_flush_cancels_timer_and_drains(self, buffer):
        buffer.push(_event("a"))
        buffer.push(_event("b"))
        drained = await buffer.flush()
        assert [s.preview for s in drained] == ["a", "b"]
        assert buffer.unread_count == 0
        assert buffer.state is WriteState.IDLE
        assert _load(buffer).unread_count == 0
        await asyncio.sleep(0.1)
        assert _load(buffer).unread_count == 0

    @pytest.mark.asyncio
    async def test_flush_without_pending_writes_now(self, buffer):
        assert await buffer.flush() == []
        assert _load(buffer).unread_count == 0

    @pytest.mark.asyncio
    async def test_summary_cap_keeps_exact_count(self, buffer):
        for i in range(15):
            buffer.push(_event(f"m{i}"))
        await buffer.close()
        snapshot = _load(buffer)
        assert snapshot.unread_count == 15
        assert len(snapshot.summaries) == 10
        assert [s.preview for s in snapshot.summaries] == [f"m{i}" for i in range(5, 15)]
        assert len(buffer.summaries) == 15

    @pytest.mark.asyncio
    async def test_snapshot_file_is_complete_json(self, buffer):
        buffer.push(_event())
        await buffer.close()
        data = json.loads(buffer.path.read_text())
        assert set(data) == {"generated_at", "agent_id", "unread_count", "summaries"}
        names = [p.name for p in buffer.path.parent.iterdir()]
        assert names == ["me.json"]

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self, tmp_path):
        blocker = tmp_path / "blocked"
        blocker.write_text("not a directory")
        buffer = NotificationBuffer(blocker, "me")
        assert await buffer.write_snapshot() is False

    @pytest.mark.asyncio
    async def test_push_during_write_schedules_again(self, buffer):
        buffer.push(_event("one"))
        await asyncio.sleep(0.08)
        buffer.push(_event("two"))
        assert buffer.state is WriteState.SCHEDULED
        await asyncio.sleep(0.1)
        assert _load(buffer).unread_count == 2
        assert buffer.state is WriteState.IDLE


class TestReadMarker:
    @pytest.mark.asyncio
    async def test_flush_with_read_through_persists_marker(self, buffer):
        buffer.push(_event("a", ts=1_000))
        await buffer.flush(read_through=1_000)
        assert buffer.read_through == 1_000
        marker = await load_read_marker(buffer.marker_path)
        assert marker.agent_id == "me"
        assert marker.read_through == 1_000

    @pytest.mark.asyncio
    async def test_late_push_of_read_mail_is_ignored(self, buffer):
        """A watcher callback arriving after the read does not count again."""
        await buffer.flush(read_through=2_000)
        assert buffer.push(_event("already read", ts=2_000)) is None
        assert buffer.push(_event("older", ts=1_500)) is None
        assert buffer.unread_count == 0
        assert buffer.state is WriteState.IDLE
        assert buffer.push(_event("new", ts=2_001)) is not None
        assert buffer.unread_count == 1
        await buffer.close()

    @pytest.mark.asyncio
    async def test_marker_from_other_process_applied_on_write(self, buffer):
        buffer.push(_event("read elsewhere", ts=1_000))
        buffer.push(_event("still unread", ts=3_000))
        await save_read_marker(buffer.marker_path, "me", 2_000)
        assert await buffer.write_snapshot() is True
        assert [s.preview for s in buffer.summaries] == ["still unread"]
        snapshot = _load(buffer)
        assert snapshot.unread_count == 1
        assert snapshot.summaries[0].sent_at == 3_000
        await buffer.close()

    @pytest.mark.asyncio
    async def test_marker_never_moves_backwards(self, tmp_path):
        path = tmp_path / "read" / "me.json"
        assert await save_read_marker(path, "me", 5_000) == 5_000
        assert await save_read_marker(path, "me", 4_000) == 5_000
        assert (await load_read_marker(path)).read_through == 5_000

    @pytest.mark.asyncio
    async def test_corrupt_marker_is_ignored(self, buffer):
        buffer.marker_path.parent.mkdir(parents=True)
        buffer.marker_path.write_text("{oops")
        assert await load_read_marker(buffer.marker_path) is None
        buffer.push(_event(ts=1_000))
        assert await buffer.write_snapshot() is True
        assert _load(buffer).unread_count == 1
        await buffer.close()
