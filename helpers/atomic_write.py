"""
Crash-safe persistence for small JSON state files such as ``watchers.json``.

A new file is written next to the target and renamed over it, so readers
see either the old document or the new one, never a truncated write.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class AtomicWriteError(Exception):
    """The state file could not be replaced."""


def atomic_write_json(filepath: Path | str, data: dict[str, Any], *, indent: int = 2) -> None:
    """
    Raises:
        AtomicWriteError: ``data`` is not serializable or the file system refused the write.
    """
    target = Path(filepath)
    try:
        document = json.dumps(data, indent=indent, ensure_ascii=False) + "\n"
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, scratch = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    except (TypeError, ValueError, OSError) as e:
        raise AtomicWriteError(f"Could not prepare {target}: {e}") from e

    scratch_path = Path(scratch)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(document)
            f.flush()
            os.fsync(f.fileno())
        scratch_path.replace(target)
    except OSError as e:
        scratch_path.unlink(missing_ok=True)
        logger.exception("Writing %s failed", target)
        raise AtomicWriteError(f"Could not write {target}: {e}") from e

    logger.debug("Wrote %s", target)


def read_json(filepath: Path | str) -> dict[str, Any] | None:
    """
    Load a JSON object from ``filepath``.

    Returns None when the file is absent, unreadable, or not a JSON object.
    """
    path = Path(filepath)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable state file %s: %s", path, e)
        return None

    if not isinstance(data, dict):
        logger.warning("Ignoring state file %s: expected a JSON object", path)
        return None
    return data
