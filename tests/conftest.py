"""Shared fixtures for the localmatrix test suite."""
from __future__ import annotations

import os
import socket
import sys
from pathlib import Path

import pytest

# Make the source tree importable as ``localmatrix`` without installing it.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from localmatrix.models import AgentRecord, AgentRegistration  # noqa: E402
from localmatrix.transport.filesystem import (  # noqa: E402
    FilesystemTransport,
    FilesystemTransportConfig,
)

HOSTNAME = socket.gethostname()


@pytest.fixture
def fs_config(tmp_path):
    """Config rooted in tmp_path; polling backend, driven manually via scan()."""
    return FilesystemTransportConfig(
        data_dir=tmp_path,
        use_watchdog=False,
        poll_interval=60.0,
    )


def make_registration(agent_id, pid=None, hostname=HOSTNAME, project_dir="/work/project"):
    return AgentRegistration(
        agent_id=agent_id,
        session_id=f"session-{agent_id}",
        project_dir=project_dir,
        hostname=hostname,
        pid=pid or os.getpid(),
    )


def write_record(config, record: AgentRecord) -> Path:
    """Drop an agent record straight onto disk, bypassing the transport."""
    config.agents_dir.mkdir(parents=True, exist_ok=True)
    path = config.agents_dir / f"{record.agent_id}.json"
    path.write_text(record.model_dump_json(), encoding="utf-8")
    return path


@pytest.fixture
def registration():
    return make_registration


@pytest.fixture
async def transport_factory(fs_config):
    """Start FilesystemTransports on the shared data root; stopped on teardown."""
    started = []

    async def _make(agent_id, config=None):
        transport = FilesystemTransport(agent_id, config or fs_config)
        await transport.start()
        started.append(transport)
        return transport

    yield _make
    for transport in started:
        await transport.stop()


@pytest.fixture
def record_writer(fs_config):
    def _write(record: AgentRecord) -> Path:
        return write_record(fs_config, record)

    return _write
