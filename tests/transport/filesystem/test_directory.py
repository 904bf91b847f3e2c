"""Agent record files: liveness pruning and staleness."""

import json
import os

import pytest

from localmatrix.models import AgentRecord, AgentStatus, now_ms
from localmatrix.transport.filesystem import AgentDirectory, FilesystemTransportConfig

DEAD_PID = 999_999_999


@pytest.fixture
def directory(fs_config):
    return AgentDirectory(fs_config.agents_dir, fs_config)


def _record(agent_id, hostname, pid=None, age_ms=0):
    now = now_ms()
    return AgentRecord(
        agent_id=agent_id,
        session_id="s",
        hostname=hostname,
        pid=pid or os.getpid(),
        project_dir="/work/p",
        display_name="p",
        registered_at=now - age_ms,
        last_heartbeat=now - age_ms,
    )


class TestAgentDirectory:
    @pytest.mark.asyncio
    async def test_register_creates_file(self, directory, fs_config, registration):
        """register() writes agents/<id>.json."""
        record = await directory.register(registration("a1"))
        path = fs_config.agents_dir / "a1.json"
        assert path.exists()
        data = json.loads(path.read_text())
        assert data["agent_id"] == "a1"
        assert data["pid"] == os.getpid()
        assert data["display_name"] == "project"
        assert data["status"] == "online"
        assert record.registered_at == data["registered_at"]

    @pytest.mark.asyncio
    async def test_register_leaves_no_temp_files(self, directory, fs_config, registration):
        await directory.register(registration("a1"))
        names = [p.name for p in fs_config.agents_dir.iterdir()]
        assert names == ["a1.json"]

    @pytest.mark.asyncio
    async def test_unregister_is_idempotent(self, directory, fs_config, registration):
        await directory.register(registration("a1"))
        assert await directory.unregister("a1") is True
        assert await directory.unregister("a1") is False
        assert not (fs_config.agents_dir / "a1.json").exists()

    @pytest.mark.asyncio
    async def test_heartbeat_bumps_timestamp(self, directory, record_writer):
        record_writer(_record("a1", directory.hostname, age_ms=60_000))
        before = await directory.get("a1")
        assert await directory.heartbeat("a1") is True
        after = await directory.get("a1")
        assert after.last_heartbeat > before.last_heartbeat
        assert after.status is AgentStatus.ONLINE
        assert after.registered_at == before.registered_at

    @pytest.mark.asyncio
    async def test_heartbeat_missing_record_is_noop(self, directory, fs_config):
        assert await directory.heartbeat("ghost") is False
        assert not (fs_config.agents_dir / "ghost.json").exists()

    @pytest.mark.asyncio
    async def test_heartbeat_corrupt_record_is_noop(self, directory, fs_config):
        fs_config.agents_dir.mkdir(parents=True)
        path = fs_config.agents_dir / "a1.json"
        path.write_text("{not json")
        assert await directory.heartbeat("a1") is False
        assert path.read_text() == "{not json"

    @pytest.mark.asyncio
    async def test_discover_empty(self, directory):
        assert await directory.discover() == []

    @pytest.mark.asyncio
    async def test_discover_prunes_dead_local_agent(self, directory, record_writer):
        """A same-host record whose pid is gone is deleted."""
        path = record_writer(_record("dead", directory.hostname, pid=DEAD_PID))
        record_writer(_record("alive", directory.hostname))
        agents = await directory.discover()
        assert [a.agent_id for a in agents] == ["alive"]
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_discover_keeps_remote_host_records(self, directory, record_writer):
        """Liveness is only checked for records of this host."""
        path = record_writer(_record("remote", "some-other-host", pid=DEAD_PID))
        agents = await directory.discover()
        assert [a.agent_id for a in agents] == ["remote"]
        assert path.exists()

    @pytest.mark.asyncio
    async def test_staleness(self, directory, record_writer):
        """30s silent is online, 91s silent is stale (not removed)."""
        record_writer(_record("fresh", directory.hostname, age_ms=30_000))
        stale_path = record_writer(_record("quiet", directory.hostname, age_ms=91_000))
        agents = {a.agent_id: a for a in await directory.discover()}
        assert agents["fresh"].status is AgentStatus.ONLINE
        assert agents["quiet"].status is AgentStatus.STALE
        assert stale_path.exists()

    @pytest.mark.asyncio
    async def test_custom_stale_threshold(self, tmp_path, record_writer):
        config = FilesystemTransportConfig(data_dir=tmp_path, heartbeat_interval=1)
        directory = AgentDirectory(config.agents_dir, config)
        record_writer(_record("a1", directory.hostname, age_ms=4_000))
        agents = await directory.discover()
        assert agents[0].status is AgentStatus.STALE

    @pytest.mark.asyncio
    async def test_discover_skips_malformed_and_temp_files(self, directory, fs_config, record_writer):
        record_writer(_record("good", directory.hostname))
        (fs_config.agents_dir / "broken.json").write_text('{"agent_id": "bro')
        (fs_config.agents_dir / "partial.json").write_text('{"agent_id": "partial"}')
        (fs_config.agents_dir / ".tmp-1-abc").write_text("{}")
        (fs_config.agents_dir / "notes.txt").write_text("hi")
        agents = await directory.discover()
        assert [a.agent_id for a in agents] == ["good"]

    @pytest.mark.asyncio
    async def test_discover_sorted(self, directory, record_writer):
        for agent_id in ("c", "a", "b"):
            record_writer(_record(agent_id, directory.hostname))
        assert [a.agent_id for a in await directory.discover()] == ["a", "b", "c"]

    def test_is_alive(self):
        assert AgentDirectory.is_alive(os.getpid())
        assert not AgentDirectory.is_alive(DEAD_PID)
        assert not AgentDirectory.is_alive(0)
