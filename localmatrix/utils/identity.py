"""Agent identifiers: validation, derivation and display names."""

from __future__ import annotations

import re
from typing import Optional

from ..exceptions import InvalidAgentIdError

# Agent ids become file and directory names under the data root, and are
# joined with "|" inside room ids, so path separators, "|" and ":" are
# never allowed.
AGENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._@+\-]{0,127}$")

_SESSION_ID_RE = re.compile(r"^[0-9a-fA-F\-]+$")


def is_valid_agent_id(agent_id: object) -> bool:
    """Return True when ``agent_id`` is safe to use as a path component."""
    return isinstance(agent_id, str) and bool(AGENT_ID_PATTERN.match(agent_id))


def validate_agent_id(agent_id: object) -> str:
    """Validate an agent id against the safe character class.

    Args:
        agent_id: Candidate agent identifier.

    Returns:
        The validated agent id, unchanged.

    Raises:
        InvalidAgentIdError: If the id could escape the data root or
            break room id parsing.
    """
    if not is_valid_agent_id(agent_id):
        raise InvalidAgentIdError(
            f"Invalid agent id {agent_id!r}: only letters, digits and "
            "'.', '_', '@', '+', '-' are allowed (max 128 chars, "
            "must start with a letter or digit)",
            payload={"agent_id": agent_id},
        )
    return agent_id  # type: ignore[return-value]


def is_valid_session_id(session_id: Optional[str]) -> bool:
    """Session ids handed over by the host environment are hex/dash strings."""
    return bool(session_id) and bool(_SESSION_ID_RE.match(session_id))


def derive_agent_id(
    hostname: str,
    session_id: Optional[str] = None,
    pid: Optional[int] = None,
) -> str:
    """Derive a deterministic agent id from session and host.

    ``session-<first 8 chars of session>@<host>`` when a session id is
    known, ``pid-<pid>@<host>`` otherwise.
    """
    if session_id:
        agent_id = f"session-{session_id[:8]}@{hostname}"
    else:
        if pid is None:
            raise ValueError("Either session_id or pid is required")
        agent_id = f"pid-{pid}@{hostname}"
    return validate_agent_id(agent_id)


def display_name_for(agent_id: str) -> str:
    """Short display name: host part and ``session-`` prefix removed."""
    name = agent_id.split("@", 1)[0]
    if name.startswith("session-"):
        name = name[len("session-"):]
    return name or agent_id
