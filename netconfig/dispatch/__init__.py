"""Asynchronous apply dispatch."""

from .dispatcher import ApplyDispatcher, ApplyHandler, DispatcherRegistry

__all__ = ["ApplyDispatcher", "ApplyHandler", "DispatcherRegistry"]
