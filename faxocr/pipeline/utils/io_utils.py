"""
Basic file-system utilities shared by the storage layer.

Provides helpers for creating parent directories and for atomically
writing JSON payloads and raw bytes.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def ensure_parent(path: str | Path) -> None:
    """
    Ensure that the parent directory for the given path exists.

    Args:
      path: Target file path whose parent should be created.
    """
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def write_bytes_atomic(path: str | Path, data: bytes) -> None:
    """
    Write bytes to ``path`` through a temporary sibling and ``os.replace``.

    Readers never observe a partially written file; a crash mid-write
    leaves the previous content in place.

    Args:
      path: Destination file path.
      data: Raw payload.
    """
    ensure_parent(path)
    fd, tmp_name = tempfile.mkstemp(dir=str(Path(path).parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_json(path: str | Path, obj: Any) -> None:
    """
    Atomically write a JSON value to disk using UTF-8 encoding.

    Args:
      path: Destination file path.
      obj: JSON-serializable value to persist.
    """
    payload = json.dumps(obj, ensure_ascii=False, indent=2)
    write_bytes_atomic(path, payload.encode("utf-8"))


def read_json(path: str | Path) -> Any:
    """
    Read and parse a JSON file using UTF-8 encoding.

    Args:
      path: Source file path.

    Returns:
      The decoded JSON value (usually a dict or list).
    """
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def read_bytes(path: str | Path) -> bytes | None:
    """Return file content, or None when the file does not exist."""
    try:
        return Path(path).read_bytes()
    except FileNotFoundError:
        return None
