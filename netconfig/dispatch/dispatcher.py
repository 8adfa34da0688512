"""Asynchronous apply dispatch.

Persisting a change is fast; making the live system reflect it can be slow.
``ApplyDispatcher`` stages a payload for each changed object, keyed by
identity, and hands the staged records to a single background worker running
on a thread pool. The caller never waits for the worker.

Overlapping triggers are coalesced by re-checking the staging area before the
worker exits: while a worker is running, ``spawn`` does not start another one,
and the running worker keeps draining until it observes an empty staging area.
The emptiness check and the worker's exit happen under the same lock that
``spawn`` uses, so a record staged after the last check always gets a fresh
worker. A worker that crashes on the staging area itself clears the running
flag and, while records remain, restarts a bounded number of times.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from ..storage.staging import StagingArea

logger = logging.getLogger(__name__)

# Applies one staged record, given its identity and staged payload
ApplyHandler = Callable[[str, Optional[dict[str, Any]]], None]

# Consecutive worker crashes restarted automatically before giving up
MAX_WORKER_RESTARTS = 3


class ApplyDispatcher:
    """Stages pending changes for one schema and applies them out of band."""

    def __init__(
        self,
        name: str,
        handler: ApplyHandler,
        staging: StagingArea,
        executor: ThreadPoolExecutor,
    ):
        """Initialize the dispatcher.

        Args:
            name: Staging namespace, unique per schema
            handler: Callable applying one staged record to the live system
            staging: Staging area holding pending records
            executor: Worker pool the apply worker is submitted to
        """
        self.name = name
        self.handler = handler
        self.staging = staging
        self._executor = executor
        self._lock = threading.Lock()
        self._running = False
        self._future: Optional[Future] = None
        self.runs = 0
        self.failures = 0
        self._restarts = 0

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def stage(self, identity: str, payload: Optional[dict[str, Any]]) -> None:
        """Record the latest payload for ``identity``."""
        self.staging.stage(self.name, identity, payload)

    def spawn(self) -> Optional[Future]:
        """Start the apply worker unless one is already running.

        Returns:
            The worker future, the running worker's future when one is
            already active, or None when the worker could not be submitted
        """
        with self._lock:
            if self._running:
                logger.debug(f"Apply worker for {self.name} already running")
                return self._future
            self._running = True

        try:
            future = self._executor.submit(self._run)
        except RuntimeError as e:
            with self._lock:
                self._running = False
            logger.error(f"Failed to spawn apply worker for {self.name}: {e}")
            return None

        with self._lock:
            self._future = future
        return future

    def dispatch(self, identity: str, payload: Optional[dict[str, Any]]) -> Optional[Future]:
        """Stage a change and make sure a worker will pick it up."""
        self.stage(identity, payload)
        return self.spawn()

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the current worker, and any worker it restarted, has finished."""
        while True:
            with self._lock:
                future = self._future
            if future is None:
                return
            future.result(timeout=timeout)
            with self._lock:
                if self._future is future:
                    return

    def _run(self) -> None:
        try:
            self._drain()
        except Exception as e:
            self.failures += 1
            self._restarts += 1
            logger.error(f"Apply worker for {self.name} stopped: {e}")
            with self._lock:
                self._running = False
            self._restart_if_pending()
        else:
            self._restarts = 0

    def _restart_if_pending(self) -> None:
        if self._restarts > MAX_WORKER_RESTARTS:
            logger.error(
                f"Apply worker for {self.name} failed {self._restarts} times in a row; "
                f"pending changes wait for the next dispatch"
            )
            self._restarts = 0
            return
        try:
            pending = self.staging.has_pending(self.name)
        except Exception as e:
            logger.error(f"Cannot read pending changes for {self.name}: {e}")
            return
        if pending:
            logger.info(f"Restarting apply worker for {self.name}")
            self.spawn()

    def _drain(self) -> None:
        while True:
            with self._lock:
                pending = self.staging.snapshot(self.name)
                if not pending:
                    self._running = False
                    return

            self.runs += 1
            logger.info(f"Applying {len(pending)} pending change(s) for {self.name}")
            for identity, payload in pending.items():
                try:
                    self.handler(identity, payload)
                except Exception as e:
                    self.failures += 1
                    logger.error(
                        f"Failed to apply {self.name}[{identity}]; persisted "
                        f"configuration and live state may diverge: {e}"
                    )

            self.staging.discard(self.name, pending)


class DispatcherRegistry:
    """Owns the apply worker pool and one dispatcher per deferred schema."""

    def __init__(
        self,
        staging: StagingArea,
        max_workers: int = 4,
        thread_name_prefix: str = "netconfig-apply",
    ):
        self.staging = staging
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=thread_name_prefix
        )
        self._dispatchers: dict[str, ApplyDispatcher] = {}
        self._lock = threading.Lock()

    def get(self, name: str, handler: ApplyHandler) -> ApplyDispatcher:
        """Return the dispatcher for ``name``, creating it on first use."""
        with self._lock:
            dispatcher = self._dispatchers.get(name)
            if dispatcher is None:
                dispatcher = ApplyDispatcher(name, handler, self.staging, self._executor)
                self._dispatchers[name] = dispatcher
            return dispatcher

    def dispatchers(self) -> list[ApplyDispatcher]:
        with self._lock:
            return list(self._dispatchers.values())

    def wait_idle(self, timeout: Optional[float] = None) -> None:
        """Wait for every dispatcher's current worker to finish."""
        for dispatcher in self.dispatchers():
            dispatcher.wait(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting new workers and optionally wait for running ones."""
        self._executor.shutdown(wait=wait)
