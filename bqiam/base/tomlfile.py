"""TOML document helpers for the cache and completion files."""

from __future__ import annotations

import os
import tempfile
import tomllib
from pathlib import Path
from typing import Any

import tomli_w


def read_toml(path: str | os.PathLike) -> dict[str, Any]:
    """Parse a TOML file. Raises ``OSError`` / ``tomllib.TOMLDecodeError``."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def write_toml_atomic(path: str | os.PathLike, data: dict[str, Any]) -> None:
    """Write *data* to *path* as one document.

    The content goes to a temporary file in the same directory first and is
    moved into place with :func:`os.replace`, so readers see either the old
    file or the complete new one.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            tomli_w.dump(data, f)
        os.replace(tmp_name, target)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
