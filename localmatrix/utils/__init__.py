"""Shared helpers: identifiers and atomic file I/O."""

from .identity import (
    AGENT_ID_PATTERN,
    validate_agent_id,
    is_valid_agent_id,
    is_valid_session_id,
    derive_agent_id,
    display_name_for,
)
from .files import TEMP_PREFIX, write_atomic, read_text, remove_file, is_message_name

__all__ = (
    "AGENT_ID_PATTERN",
    "validate_agent_id",
    "is_valid_agent_id",
    "is_valid_session_id",
    "derive_agent_id",
    "display_name_for",
    "TEMP_PREFIX",
    "write_atomic",
    "read_text",
    "remove_file",
    "is_message_name",
)
