"""AgentDirectory — agent records as JSON files, with liveness pruning."""

from __future__ import annotations

import json
import logging
import os
import socket
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ...models import AgentRecord, AgentRegistration, AgentStatus, now_ms
from ...utils.files import is_message_name, read_text, remove_file, write_atomic
from ...utils.identity import validate_agent_id
from .config import FilesystemTransportConfig

logger = logging.getLogger(__name__)


class AgentDirectory:
    """Agent directory using one ``<agent_id>.json`` file per agent.

    Records of agents on this host are pruned as soon as their PID is
    confirmed dead (``os.kill(pid, 0)``), without waiting for heartbeat
    timeouts. Records whose heartbeat is older than the stale threshold
    are reported ``stale`` but kept: a stale agent may be a busy one.

    All writes use write-then-rename, so readers never see a torn record.

    Args:
        agents_dir: Path to the agents directory.
        config: Transport configuration.
        hostname: Host name used for the same-host liveness check.
    """

    def __init__(
        self,
        agents_dir: Path,
        config: FilesystemTransportConfig,
        hostname: Optional[str] = None,
    ) -> None:
        self._dir = agents_dir
        self._config = config
        self._hostname = hostname or socket.gethostname()

    @property
    def hostname(self) -> str:
        return self._hostname

    def record_path(self, agent_id: str) -> Path:
        """Path of an agent's record file.

        Raises:
            InvalidAgentIdError: If the id is not a safe path component.
        """
        return self._dir / f"{validate_agent_id(agent_id)}.json"

    async def register(self, registration: AgentRegistration) -> AgentRecord:
        """Write a fresh record for ``registration``.

        Re-registering an existing id replaces its record.
        """
        path = self.record_path(registration.agent_id)
        record = AgentRecord.from_registration(registration)
        self._dir.mkdir(parents=True, exist_ok=True)
        await self._write(path, record)
        logger.info(
            "Agent %s registered (pid %s on %s, project %s)",
            record.agent_id,
            record.pid,
            record.hostname,
            record.project_dir,
        )
        return record

    async def unregister(self, agent_id: str) -> bool:
        """Remove an agent's record; absence is success.

        Returns:
            True if a record was removed.
        """
        removed = remove_file(self.record_path(agent_id))
        if removed:
            logger.info("Agent %s unregistered", agent_id)
        return removed

    async def heartbeat(self, agent_id: str) -> bool:
        """Bump ``last_heartbeat`` and mark the agent online.

        A missing or corrupt record is a silent no-op: the agent will
        simply register again.

        Returns:
            True if the record was rewritten.
        """
        path = self.record_path(agent_id)
        record = await self._read_path(path)
        if record is None:
            logger.debug("Heartbeat for unknown agent %s ignored", agent_id)
            return False
        updated = record.model_copy(
            update={"last_heartbeat": now_ms(), "status": AgentStatus.ONLINE}
        )
        await self._write(path, updated)
        return True

    async def get(self, agent_id: str) -> Optional[AgentRecord]:
        """Read a single record without liveness checks."""
        return await self._read_path(self.record_path(agent_id))

    async def discover(self) -> List[AgentRecord]:
        """Scan every record, prune dead local agents and derive status.

        Malformed or vanished files are skipped.

        Returns:
            Surviving records, ordered by agent id.
        """
        if not self._dir.exists():
            return []
        now = now_ms()
        threshold_ms = self._config.stale_threshold * 1000
        agents: List[AgentRecord] = []
        for path in sorted(self._dir.iterdir()):
            if not is_message_name(path.name, self._config.temp_prefix):
                continue
            record = await self._read_path(path)
            if record is None:
                continue
            if record.hostname == self._hostname and not self.is_alive(record.pid):
                if remove_file(path):
                    logger.info(
                        "Pruned agent %s: process %s is gone",
                        record.agent_id,
                        record.pid,
                    )
                continue
            status = (
                AgentStatus.STALE
                if record.heartbeat_age(now) > threshold_ms
                else AgentStatus.ONLINE
            )
            agents.append(record.model_copy(update={"status": status}))
        return agents

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _write(self, path: Path, record: AgentRecord) -> None:
        await write_atomic(
            path,
            record.model_dump_json(indent=2),
            temp_prefix=self._config.temp_prefix,
        )

    async def _read_path(self, path: Path) -> Optional[AgentRecord]:
        """Read and parse a record file, None when missing or malformed."""
        try:
            raw = await read_text(path)
            if raw is None:
                return None
            return AgentRecord.model_validate_json(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
            logger.debug("Skipping agent record %s: %s", path, exc)
            return None

    @staticmethod
    def is_alive(pid: int) -> bool:
        """Check if a process with the given PID is alive.

        Uses ``os.kill(pid, 0)`` which does not send a signal but checks
        for process existence.
        """
        if pid <= 0:
            return False
        try:
            os.kill(pid, 0)
            return True
        except ProcessLookupError:
            return False
        except PermissionError:
            # Process exists but owned by another user.
            return True
        except OSError:
            return False
