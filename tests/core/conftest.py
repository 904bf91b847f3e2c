"""In-memory transport used to exercise the core components in isolation."""

import pytest

from localmatrix.models import AgentRecord
from localmatrix.transport import AbstractTransport


class MemoryTransport(AbstractTransport):
    """Keeps everything in dicts and counts the calls it receives."""

    def __init__(self):
        self.agents = {}
        self.mailboxes = {}
        self.callbacks = {}
        self.calls = []
        self.fail_heartbeat = False
        self.started = False

    async def start(self):
        self.started = True

    async def stop(self):
        self.started = False

    async def send(self, event):
        self.calls.append(("send", event.event_id))
        recipient = next(
            p for p in event.room_id[1:-len(":local")].split("|") if p != event.sender
        )
        self.mailboxes.setdefault(recipient, []).append(event)

    async def register_agent(self, registration):
        self.calls.append(("register", registration.agent_id))
        record = AgentRecord.from_registration(registration)
        self.agents[record.agent_id] = record
        return record

    async def unregister_agent(self, agent_id):
        self.calls.append(("unregister", agent_id))
        self.agents.pop(agent_id, None)

    async def discover_agents(self):
        self.calls.append(("discover", None))
        return [self.agents[k] for k in sorted(self.agents)]

    async def read_messages(self, agent_id, filter=None):
        messages = [m for m in self.mailboxes.get(agent_id, []) if filter is None or filter.matches(m)]
        if filter is not None and filter.limit:
            messages = messages[-filter.limit:]
        return messages

    async def heartbeat(self, agent_id):
        self.calls.append(("heartbeat", agent_id))
        if self.fail_heartbeat:
            raise OSError("disk on fire")

    def is_healthy(self):
        return self.started

    def on_message(self, agent_id, callback):
        self.callbacks[agent_id] = callback

    def count(self, name):
        return sum(1 for call, _ in self.calls if call == name)


@pytest.fixture
def memory_transport():
    return MemoryTransport()
