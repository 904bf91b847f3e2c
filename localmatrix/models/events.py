"""Event envelope: the unit of exchange between agents.

The envelope follows the shape of a Matrix client-server event
(``event_id``, ``type``, ``sender``, ``room_id``, ``origin_server_ts``,
``content``) with LocalMatrix extension fields under the
``io.localmatrix.*`` namespace.
"""

from __future__ import annotations

import re
import time
import uuid
from enum import Enum
from typing import Annotated, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import InvalidRoutingError
from ..utils.identity import validate_agent_id

SCHEMA_VERSION = "1.0"
ROOM_SUFFIX = ":local"

_ROOM_RE = re.compile(r"^!(?P<members>[^:]+):local$")


def now_ms() -> int:
    """Milliseconds since the epoch."""
    return int(time.time() * 1000)


class EventType(str, Enum):
    """Event type tags."""
    MESSAGE = "io.localmatrix.message"
    NOTICE = "io.localmatrix.message.notice"
    AGENT_REGISTER = "io.localmatrix.agent.register"
    AGENT_DEREGISTER = "io.localmatrix.agent.deregister"
    AGENT_HEARTBEAT = "io.localmatrix.agent.heartbeat"


class TransportKind(str, Enum):
    """Transport used to carry an event."""
    FILESYSTEM = "filesystem"
    UNIX_SOCKET = "unix_socket"
    MATRIX = "matrix"


class TextContent(BaseModel):
    """Plain text message."""
    model_config = ConfigDict(frozen=True)

    msgtype: Literal["m.text"] = "m.text"
    body: str


class NoticeContent(BaseModel):
    """Automated notice, not expected to be answered."""
    model_config = ConfigDict(frozen=True)

    msgtype: Literal["m.notice"] = "m.notice"
    body: str


EventContent = Annotated[
    Union[TextContent, NoticeContent],
    Field(discriminator="msgtype"),
]


class Event(BaseModel):
    """Immutable event envelope.

    Extension fields serialize under their namespaced keys
    (``io.localmatrix.project_dir`` and friends) and may be populated
    either by alias or by field name.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: EventType = EventType.MESSAGE
    sender: str
    room_id: str
    origin_server_ts: int = Field(default_factory=now_ms)
    content: EventContent
    project_dir: Optional[str] = Field(
        default=None,
        alias="io.localmatrix.project_dir",
        description="Working directory of the sending agent.",
    )
    schema_version: str = Field(
        default=SCHEMA_VERSION,
        alias="io.localmatrix.schema_version",
    )
    transport: Optional[TransportKind] = Field(
        default=None,
        alias="io.localmatrix.transport",
    )

    @property
    def body(self) -> Optional[str]:
        """Text body of the content, if it carries one."""
        return getattr(self.content, "body", None)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)

    @classmethod
    def from_json(cls, raw: Union[str, bytes]) -> "Event":
        return cls.model_validate_json(raw)


def room_id_for(agent_a: str, agent_b: str) -> str:
    """Deterministic room id for a two-party conversation.

    The participants are sorted, so both sides derive the same id
    without coordination: ``!{first}|{second}:local``.

    Raises:
        InvalidRoutingError: If both ids are the same agent.
        InvalidAgentIdError: If either id fails validation.
    """
    validate_agent_id(agent_a)
    validate_agent_id(agent_b)
    if agent_a == agent_b:
        raise InvalidRoutingError(
            f"A room needs two distinct participants, got {agent_a!r} twice",
            payload={"agent_id": agent_a},
        )
    first, second = sorted((agent_a, agent_b))
    return f"!{first}|{second}{ROOM_SUFFIX}"


def parse_room_id(room_id: str) -> Tuple[str, str]:
    """Split a room id into its two participants.

    Raises:
        InvalidRoutingError: If the room id is malformed or does not hold
            exactly two distinct, non-empty participants.
    """
    match = _ROOM_RE.match(room_id or "")
    if not match:
        raise InvalidRoutingError(
            f"Malformed room id {room_id!r}",
            payload={"room_id": room_id},
        )
    members = match.group("members").split("|")
    if len(members) != 2 or not all(members) or members[0] == members[1]:
        raise InvalidRoutingError(
            f"Room id {room_id!r} does not name two distinct participants",
            payload={"room_id": room_id},
        )
    return members[0], members[1]
