# scripts/tot/persistence.py
"""JSON snapshot persistence for the ticket counter table.

The whole table is written on every mutation. A missing file is a fresh
store; a file that exists but does not hold a valid mapping is fatal.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class TotError(Exception):
    """Base class for ticket store errors."""


class CorruptStorageError(TotError):
    """The storage file exists but cannot be turned into a counter table."""


class PersistenceError(TotError):
    """Writing a snapshot failed; the previous snapshot is still in place."""


def _validate(data, path: Path) -> dict[str, int]:
    if not isinstance(data, dict):
        raise CorruptStorageError(f"{path}: expected a JSON object, got {type(data).__name__}")
    table = {}
    for key, value in data.items():
        if not key:
            raise CorruptStorageError(f"{path}: empty key")
        # bool is an int subclass; "true" is not a ticket number
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise CorruptStorageError(f"{path}: bad value for {key!r}: {value!r}")
        table[key] = value
    return table


def load(path) -> dict[str, int]:
    """Load the counter table from path. Returns {} if the file does not exist."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info(f"No storage at {path}, starting empty")
        return {}
    except (OSError, UnicodeDecodeError) as e:
        raise CorruptStorageError(f"{path}: unreadable: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        # an empty file lands here too
        raise CorruptStorageError(f"{path}: invalid JSON: {e}") from e
    return _validate(data, path)


def _sync_dir(directory: Path) -> None:
    # Make the rename itself durable.
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def save(path, table: dict[str, int]) -> None:
    """Atomically replace the snapshot at path with table."""
    path = Path(path)
    tmp = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(table, f, indent=2, sort_keys=True)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
        _sync_dir(path.parent)
    except OSError as e:
        try:
            tmp.unlink()
        except FileNotFoundError:
            pass
        except OSError as cleanup:
            logger.error(f"Could not remove {tmp}: {cleanup}")
        raise PersistenceError(f"{path}: {e}") from e
