"""Atomic JSON file persistence for launcher state files.

The server cache and the user settings file are both rewritten wholesale on
every save. Writes go through a temp file in the target directory followed by
a rename, so a crash mid-write never leaves a truncated file behind for the
next launch to trip over.
"""

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger()


def write_json_atomic(path: Path, data: Any, *, indent: int | None = None) -> None:  # noqa: ANN401
    """Serialize ``data`` as JSON and atomically replace ``path`` with it.

    Creates the parent directory when missing. Raises OSError (or TypeError for
    unserializable data) after cleaning up the temp file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(data, indent=indent, ensure_ascii=False).encode("utf-8")

    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.stem}_", suffix=".tmp")
    fd_owned = True
    try:
        with os.fdopen(fd, "wb") as f:
            fd_owned = False  # os.fdopen took ownership; it will close fd
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        Path(tmp_path).replace(path)
    except BaseException:
        if fd_owned:
            with contextlib.suppress(OSError):
                os.close(fd)
        with contextlib.suppress(OSError):
            Path(tmp_path).unlink()
        raise
    logger.debug("wrote json file", path=str(path), size=len(content))


def read_json(path: Path) -> Any | None:  # noqa: ANN401
    """Read and decode a JSON file.

    Returns None when the file does not exist. Raises OSError for read
    failures and json.JSONDecodeError (a ValueError) for malformed content.
    """
    if not path.exists():
        return None
    return json.loads(path.read_text(encoding="utf-8"))
