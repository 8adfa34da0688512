"""Backing store and staging area collaborators."""

from .staging import FileStagingArea, MemoryStagingArea, StagingArea
from .store import ConfigStore, DictConfigStore, FileConfigStore, join_path, split_path

__all__ = [
    "ConfigStore",
    "DictConfigStore",
    "FileConfigStore",
    "StagingArea",
    "MemoryStagingArea",
    "FileStagingArea",
    "join_path",
    "split_path",
]
