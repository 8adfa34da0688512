"""Request-scoped collaborators handed to every model operation."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .dispatch import DispatcherRegistry
from .settings import EngineSettings
from .storage import (
    ConfigStore,
    DictConfigStore,
    FileConfigStore,
    FileStagingArea,
    MemoryStagingArea,
)

logger = logging.getLogger(__name__)


class SystemControl:
    """Live-system collaborator invoked from ``apply`` hooks.

    Concrete deployments subclass this and add schema-specific operations
    (reconfigure an interface, destroy a tunnel, ...). Operations must be
    idempotent and report failure by raising.
    """

    def run(self, action: str, **params: Any) -> Any:
        """Perform a named reconfiguration action.

        Args:
            action: Action identifier understood by the live system
            **params: Action parameters

        Raises:
            NotImplementedError: Subclasses must implement run
        """
        raise NotImplementedError("Subclasses must implement run method")


@dataclass
class ModelContext:
    """Collaborators shared by model operations within one request."""

    store: ConfigStore
    dispatchers: DispatcherRegistry
    system: Optional[SystemControl] = None
    settings: EngineSettings = field(default_factory=EngineSettings)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[EngineSettings] = None,
        system: Optional[SystemControl] = None,
    ) -> "ModelContext":
        """Build a context with the store and staging area the settings describe."""
        settings = settings or EngineSettings()

        if settings.store.path is not None:
            store: ConfigStore = FileConfigStore(
                settings.store.path, history_size=settings.store.history_size
            )
        else:
            store = DictConfigStore(history_size=settings.store.history_size)

        if settings.apply.staging_dir is not None:
            staging = FileStagingArea(settings.apply.staging_dir)
        else:
            staging = MemoryStagingArea()

        dispatchers = DispatcherRegistry(
            staging,
            max_workers=settings.apply.max_workers,
            thread_name_prefix=settings.apply.thread_name_prefix,
        )
        logger.debug(f"Created model context with {type(store).__name__}")
        context = cls(store=store, dispatchers=dispatchers, system=system, settings=settings)
        context.resume_pending()
        return context

    def resume_pending(self) -> list[str]:
        """Start apply workers for changes staged before this context existed.

        A file staging area outlives the process; records a previous process
        staged but never applied are drained here.

        Returns:
            Dispatcher names a worker was started for
        """
        from .models.registry import registered_models

        resumed: list[str] = []
        for model_class in registered_models():
            if model_class.always_apply:
                continue
            name = model_class.dispatcher_name()
            if name in resumed or not self.dispatchers.staging.has_pending(name):
                continue
            logger.info(f"Resuming pending changes for {name}")
            model_class.get_dispatcher(self).spawn()
            resumed.append(name)
        return resumed

    def close(self, wait: bool = True) -> None:
        """Shut down the apply worker pool."""
        self.dispatchers.shutdown(wait=wait)
