"""Filesystem transport for local agent communication.

Zero-dependency-on-services transport where agents running on the same
machine discover each other and exchange messages through a shared
directory.
"""

from .config import FilesystemTransportConfig
from .directory import AgentDirectory
from .inbox import InboxManager
from .watcher import InboxWatcher
from .transport import FilesystemTransport

__all__ = [
    "FilesystemTransport",
    "FilesystemTransportConfig",
    "AgentDirectory",
    "InboxManager",
    "InboxWatcher",
]
