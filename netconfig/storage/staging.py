"""Pending-change staging areas for deferred apply.

A staging area keeps, per dispatcher, one mapping from object identity to the
payload that still has to be applied to the live system. Staging the
same identity twice overwrites the earlier record, so a worker only ever sees
the latest version. Payloads are JSON-compatible mappings.
"""

import contextlib
import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterator, Optional, Union

from .locking import file_lock
from .store import atomic_write

logger = logging.getLogger(__name__)


class StagingArea(ABC):
    """Keyed map of pending changes, one namespace per dispatcher."""

    def __init__(self) -> None:
        self._lock = threading.RLock()

    @contextlib.contextmanager
    def _exclusive(self, name: str) -> Iterator[None]:
        """Hold the lock guarding read-modify-write of ``name``'s mapping."""
        with self._lock:
            yield

    @abstractmethod
    def _read(self, name: str) -> dict[str, Any]:
        """Return the full pending mapping for ``name``."""

    @abstractmethod
    def _write(self, name: str, pending: dict[str, Any]) -> None:
        """Replace the full pending mapping for ``name``."""

    def stage(self, name: str, identity: str, payload: Optional[dict[str, Any]]) -> None:
        """Record ``payload`` as the pending change for ``identity``."""
        with self._exclusive(name):
            pending = self._read(name)
            pending[str(identity)] = copy.deepcopy(payload)
            self._write(name, pending)
            logger.debug(f"Staged change for {name}[{identity}]")

    def snapshot(self, name: str) -> dict[str, Any]:
        """Return a copy of every pending change for ``name``."""
        with self._lock:
            return copy.deepcopy(self._read(name))

    def discard(self, name: str, applied: dict[str, Any]) -> int:
        """Remove applied records that were not re-staged in the meantime.

        Args:
            name: Dispatcher namespace
            applied: Identity to form mapping returned by ``snapshot``

        Returns:
            Number of records removed
        """
        with self._exclusive(name):
            pending = self._read(name)
            removed = 0
            for identity, form in applied.items():
                if identity in pending and pending[identity] == form:
                    del pending[identity]
                    removed += 1
            self._write(name, pending)
            return removed

    def clear(self, name: str) -> None:
        """Drop every pending change for ``name``."""
        with self._exclusive(name):
            self._write(name, {})

    def has_pending(self, name: str) -> bool:
        with self._lock:
            return bool(self._read(name))


class MemoryStagingArea(StagingArea):
    """Staging area that lives in process memory."""

    def __init__(self) -> None:
        super().__init__()
        self._pending: dict[str, dict[str, Any]] = {}

    def _read(self, name: str) -> dict[str, Any]:
        return dict(self._pending.get(name, {}))

    def _write(self, name: str, pending: dict[str, Any]) -> None:
        if pending:
            self._pending[name] = dict(pending)
        else:
            self._pending.pop(name, None)


class FileStagingArea(StagingArea):
    """Staging area persisted as one JSON file per dispatcher.

    Each ``stage`` call reads the file, merges the new record and rewrites the
    whole file atomically. The file is removed once drained.
    """

    def __init__(self, directory: Union[str, Path]):
        """Initialize the staging area.

        Args:
            directory: Directory holding the pending-change files
        """
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        """Return the well-known pending-change file for ``name``."""
        return self.directory / f"{name}.pending.json"

    @contextlib.contextmanager
    def _exclusive(self, name: str) -> Iterator[None]:
        # Other processes staging into the same directory take the same lock
        with self._lock, file_lock(self.path_for(name)):
            yield

    def _read(self, name: str) -> dict[str, Any]:
        path = self.path_for(name)
        if not path.exists():
            return {}

        try:
            data = json.loads(path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            logger.error(f"Discarding unreadable staging file {path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.error(f"Discarding malformed staging file {path}")
            return {}
        return data

    def _write(self, name: str, pending: dict[str, Any]) -> None:
        path = self.path_for(name)
        if not pending:
            path.unlink(missing_ok=True)
            return
        atomic_write(path, json.dumps(pending, indent=2, sort_keys=True))
