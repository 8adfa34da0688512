"""Advisory file locks shared by every process using the same files."""

import contextlib
import logging
import os
from pathlib import Path
from typing import Iterator

if os.name == "nt":  # pragma: no cover - platform specific
    import msvcrt
else:  # pragma: no cover - platform specific
    import fcntl

logger = logging.getLogger(__name__)


def lock_path_for(path: Path) -> Path:
    """Return the sidecar lock file guarding ``path``."""
    return path.with_suffix(path.suffix + ".lock")


@contextlib.contextmanager
def file_lock(path: Path) -> Iterator[None]:
    """Hold an exclusive advisory lock on the sidecar lock file of ``path``.

    The lock is not re-entrant: acquiring it twice from one process through
    separate calls blocks.
    """
    lock_path = lock_path_for(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a") as fh:
        if os.name == "nt":  # pragma: no cover - platform specific
            fh.seek(0)
            msvcrt.locking(fh.fileno(), msvcrt.LK_LOCK, 1)
        else:  # pragma: no cover - platform specific
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
        logger.debug(f"Acquired file lock {lock_path}")
        try:
            yield
        finally:
            if os.name == "nt":  # pragma: no cover - platform specific
                msvcrt.locking(fh.fileno(), msvcrt.LK_UNLCK, 1)
            else:  # pragma: no cover - platform specific
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
