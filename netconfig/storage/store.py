"""Config store collaborators.

The engine only talks to the backing store through the ``ConfigStore``
interface: dot-separated paths addressed with ``get``/``set``/``delete`` and a
``commit`` that makes pending writes durable. Two implementations ship with
the engine: an in-memory dictionary store and a JSON/YAML file store.
"""

import contextlib
import copy
import json
import logging
import os
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from pathlib import Path
from typing import Any, Iterator, Optional, Union

import yaml

from ..errors import InternalError
from .locking import file_lock

logger = logging.getLogger(__name__)

PATH_SEPARATOR = "."


def split_path(path: str) -> list[str]:
    """Split a dot-separated store path into its parts."""
    if not path:
        return []
    return [part for part in str(path).split(PATH_SEPARATOR) if part != ""]


def join_path(*parts: Any) -> str:
    """Join path parts with the store separator, skipping empty parts."""
    return PATH_SEPARATOR.join(str(part) for part in parts if part not in (None, ""))


class ConfigStore(ABC):
    """Abstract backing store for configuration objects."""

    def __init__(self) -> None:
        self._lock = threading.RLock()

    @property
    def store_key(self) -> str:
        """Key naming the backing storage, shared by every store object on it."""
        return f"{type(self).__name__}@{id(self):x}"

    @contextlib.contextmanager
    def lock(self) -> Iterator["ConfigStore"]:
        """Hold the store's exclusive lock for a read-modify-write sequence."""
        with self._lock:
            yield self

    @abstractmethod
    def get(self, path: str, default: Any = None) -> Any:
        """Return the value stored at ``path`` or ``default``."""

    @abstractmethod
    def set(self, path: str, value: Any) -> None:
        """Store ``value`` at ``path``, creating intermediate mappings."""

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Remove the value at ``path``; returns False when nothing was there."""

    @abstractmethod
    def commit(self, description: str) -> None:
        """Persist pending writes durably, recording ``description``."""


class DictConfigStore(ConfigStore):
    """In-memory config store backed by nested dictionaries."""

    def __init__(self, data: Optional[dict[str, Any]] = None, history_size: int = 50):
        """Initialize the store.

        Args:
            data: Initial configuration tree
            history_size: Number of commit records to keep
        """
        super().__init__()
        self._data: dict[str, Any] = copy.deepcopy(data) if data else {}
        self._history: deque[dict[str, Any]] = deque(maxlen=history_size)
        self._dirty = False

    @property
    def data(self) -> dict[str, Any]:
        """Deep copy of the whole configuration tree."""
        with self._lock:
            return copy.deepcopy(self._data)

    @property
    def history(self) -> list[dict[str, Any]]:
        """Commit records, oldest first."""
        return list(self._history)

    @property
    def dirty(self) -> bool:
        """Whether writes are pending since the last commit."""
        return self._dirty

    def _lookup(self, node: Any, part: str) -> tuple[bool, Any]:
        if isinstance(node, dict):
            if part in node:
                return True, node[part]
            return False, None
        if isinstance(node, list) and part.isdigit():
            index = int(part)
            if index < len(node):
                return True, node[index]
        return False, None

    def get(self, path: str, default: Any = None) -> Any:
        with self._lock:
            node: Any = self._data
            for part in split_path(path):
                found, node = self._lookup(node, part)
                if not found:
                    return default
            return copy.deepcopy(node)

    def set(self, path: str, value: Any) -> None:
        parts = split_path(path)
        if not parts:
            raise InternalError("Cannot replace the store root", code="STORE_WRITE_FAILED")

        with self._lock:
            node = self._data
            for part in parts[:-1]:
                found, child = self._lookup(node, part)
                if not found or not isinstance(child, (dict, list)):
                    if not isinstance(node, dict):
                        raise InternalError(
                            f"Cannot create '{part}' below a non-mapping in '{path}'",
                            code="STORE_WRITE_FAILED",
                        )
                    child = {}
                    node[part] = child
                node = child

            last = parts[-1]
            if isinstance(node, list) and last.isdigit() and int(last) < len(node):
                node[int(last)] = copy.deepcopy(value)
            elif isinstance(node, dict):
                node[last] = copy.deepcopy(value)
            else:
                raise InternalError(
                    f"Cannot set '{path}': parent is not a mapping",
                    code="STORE_WRITE_FAILED",
                )
            self._dirty = True
            logger.debug(f"Set store path {path}")

    def delete(self, path: str) -> bool:
        parts = split_path(path)
        if not parts:
            return False

        with self._lock:
            node: Any = self._data
            for part in parts[:-1]:
                found, node = self._lookup(node, part)
                if not found:
                    return False

            last = parts[-1]
            if isinstance(node, dict) and last in node:
                del node[last]
            elif isinstance(node, list) and last.isdigit() and int(last) < len(node):
                del node[int(last)]
            else:
                return False

            self._dirty = True
            logger.debug(f"Deleted store path {path}")
            return True

    def commit(self, description: str) -> None:
        with self._lock:
            self._history.append({"description": description, "timestamp": time.time()})
            self._dirty = False
            logger.info(f"Committed configuration change: {description}")


class FileConfigStore(DictConfigStore):
    """Config store persisted to a JSON or YAML file.

    Writes stay in memory until ``commit`` serializes the whole tree and
    atomically replaces the file. ``lock`` also takes an advisory lock on a
    sidecar ``<file>.lock`` and re-reads the file when another store object
    or process replaced it, so read-modify-write sequences are exclusive
    across every store opened on the same path.
    """

    def __init__(self, path: Union[str, Path], history_size: int = 50):
        """Initialize the store and load the file if it exists.

        Args:
            path: Backing file; ``.yaml``/``.yml`` selects YAML, anything else JSON
            history_size: Number of commit records to keep
        """
        super().__init__(history_size=history_size)
        self.path = Path(path)
        self._lock_depth = 0
        self._signature: Optional[tuple[int, int, int]] = None
        self.reload()

    @property
    def is_yaml(self) -> bool:
        return self.path.suffix.lower() in (".yaml", ".yml")

    @property
    def store_key(self) -> str:
        return str(self.path.resolve())

    def _file_signature(self) -> Optional[tuple[int, int, int]]:
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return None
        return (stat.st_ino, stat.st_mtime_ns, stat.st_size)

    @contextlib.contextmanager
    def lock(self) -> Iterator["ConfigStore"]:
        """Hold the thread lock and the file lock, refreshing stale state on entry.

        Re-entrant within one store object.
        """
        with self._lock:
            outermost = self._lock_depth == 0
            with file_lock(self.path) if outermost else contextlib.nullcontext():
                self._lock_depth += 1
                try:
                    if outermost:
                        self._refresh()
                    yield self
                finally:
                    self._lock_depth -= 1

    def _refresh(self) -> None:
        if self._file_signature() == self._signature:
            return
        if self._dirty:
            logger.warning(f"Discarding uncommitted changes; {self.path} was modified by another writer")
        self.reload()

    def reload(self) -> None:
        """Discard in-memory state and re-read the backing file."""
        with self._lock:
            self._signature = self._file_signature()
            if self._signature is None:
                logger.info(f"Config file {self.path} does not exist, starting empty")
                self._data = {}
                self._dirty = False
                return

            content = self.path.read_text(encoding="utf-8")
            if self.is_yaml:
                data = yaml.safe_load(content) or {}
            else:
                data = json.loads(content) if content.strip() else {}

            if not isinstance(data, dict):
                raise InternalError(
                    f"Config file {self.path} must contain a mapping",
                    code="STORE_WRITE_FAILED",
                )
            self._data = data
            self._dirty = False
            logger.debug(f"Loaded configuration from {self.path}")

    def _serialize(self) -> str:
        if self.is_yaml:
            return yaml.safe_dump(
                self._data, default_flow_style=False, allow_unicode=True, sort_keys=False
            )
        return json.dumps(self._data, indent=2, ensure_ascii=False)

    def commit(self, description: str) -> None:
        with self._lock:
            held = self._lock_depth > 0
            with contextlib.nullcontext() if held else file_lock(self.path):
                atomic_write(self.path, self._serialize())
                self._signature = self._file_signature()
            super().commit(description)


def atomic_write(file_path: Path, content: str) -> None:
    """Write ``content`` to ``file_path`` through a temp file and rename.

    Raises:
        InternalError: If the write fails; the original file is left untouched
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=file_path.parent,
            prefix=f".{file_path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        ) as temp_file:
            temp_path = Path(temp_file.name)
            temp_file.write(content)
            temp_file.flush()
            os.fsync(temp_file.fileno())

        temp_path.replace(file_path)
        logger.debug(f"Atomic write completed: {file_path}")

    except OSError as e:
        if temp_path is not None and temp_path.exists():
            with contextlib.suppress(OSError):
                temp_path.unlink()
        raise InternalError(
            f"Atomic write failed for {file_path}: {e}", code="STORE_WRITE_FAILED"
        ) from e
