"""Shared fixtures for the netconfig test suite."""

import tempfile
import threading
from pathlib import Path

import pytest

from netconfig.context import ModelContext, SystemControl
from netconfig.dispatch import DispatcherRegistry
from netconfig.storage import DictConfigStore, MemoryStagingArea


class RecordingSystem(SystemControl):
    """System control that records every action instead of running it."""

    def __init__(self):
        self.calls = []
        self.fail_actions = set()
        self._lock = threading.Lock()

    def run(self, action, **params):
        with self._lock:
            self.calls.append((action, params))
        if action in self.fail_actions:
            raise RuntimeError(f"{action} failed")
        return True

    def actions(self):
        with self._lock:
            return [action for action, _ in self.calls]


@pytest.fixture()
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture()
def store():
    return DictConfigStore()


@pytest.fixture()
def staging():
    return MemoryStagingArea()


@pytest.fixture()
def system():
    return RecordingSystem()


@pytest.fixture()
def context(store, staging, system):
    """Model context backed by in-memory collaborators."""
    ctx = ModelContext(store=store, dispatchers=DispatcherRegistry(staging, max_workers=2), system=system)
    yield ctx
    ctx.close(wait=True)
