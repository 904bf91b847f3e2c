"""Atomic file helpers shared by every on-disk writer."""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path
from typing import Optional

import aiofiles

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".tmp-"


def is_message_name(name: str, temp_prefix: str = TEMP_PREFIX) -> bool:
    """True for final ``*.json`` names; temporary and hidden files are never input."""
    return (
        name.endswith(".json")
        and not name.startswith(temp_prefix)
        and not name.startswith(".")
    )


async def write_atomic(target: Path, data: str, temp_prefix: str = TEMP_PREFIX) -> None:
    """Write ``data`` to ``target`` using write-then-rename.

    The content goes to a uniquely named temporary file in the same
    directory and is then renamed over the final name, so a concurrent
    reader sees either the previous file or the complete new one.

    Args:
        target: Final path of the file.
        data: Text content to write.
        temp_prefix: Reserved prefix for the temporary file name.
    """
    tmp_path = target.parent / f"{temp_prefix}{os.getpid()}-{uuid.uuid4().hex}"
    try:
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(data)
        tmp_path.replace(target)
    except BaseException:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        raise


async def read_text(path: Path) -> Optional[str]:
    """Read a whole text file, returning None if it vanished."""
    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return await f.read()
    except FileNotFoundError:
        return None


def remove_file(path: Path) -> bool:
    """Remove ``path``; absence is not an error.

    Returns:
        True if a file was removed, False if it was already gone.
    """
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        logger.debug("%s already removed", path)
        return False
