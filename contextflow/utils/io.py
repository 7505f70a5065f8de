"""File I/O helpers."""

import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO


@contextmanager
def atomic_write(path: Path, mode: str = "w", encoding: str = "utf-8") -> Iterator[IO]:
    """
    Write to a temp file in the target directory, then rename over ``path``.

    Readers never observe a partially written file. The temp file is removed
    if the block raises.
    """
    path = Path(path)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, mode, encoding=encoding) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def validate_key(key: str) -> None:
    """
    Validate a storage key to prevent path traversal.

    Raises:
        ValueError: If key contains path traversal or dangerous patterns
    """
    if not key or key.strip() == "":
        raise ValueError("Key cannot be empty")

    if "/" in key or "\\" in key:
        raise ValueError(f"Invalid key format: path separators not allowed in '{key}'")

    if ".." in key or key.startswith("."):
        raise ValueError(f"Invalid key format: path traversal detected in '{key}'")

    if len(key) > 1 and key[1] == ":":
        raise ValueError(f"Invalid key format: absolute paths not allowed in '{key}'")

    if "\x00" in key:
        raise ValueError("Invalid key format: null bytes not allowed")

    dangerous_chars = {"<", ">", "|", "&", "$", "`", "'", '"'}
    if any(char in key for char in dangerous_chars):
        raise ValueError(f"Invalid key format: contains dangerous characters in '{key}'")
