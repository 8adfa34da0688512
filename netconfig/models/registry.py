"""Registry of schema classes, filled in as Model subclasses are defined."""

import logging
from typing import TYPE_CHECKING, Union

from ..errors import InternalError

if TYPE_CHECKING:
    from .model import Model

logger = logging.getLogger(__name__)

_MODEL_REGISTRY: dict[str, "type[Model]"] = {}


def register_model(model_class: "type[Model]") -> None:
    """Register ``model_class`` under its class name."""
    name = model_class.__name__
    if name in _MODEL_REGISTRY and _MODEL_REGISTRY[name] is not model_class:
        logger.debug(f"Replacing registered model class {name}")
    _MODEL_REGISTRY[name] = model_class


def get_model_class(reference: Union[str, "type[Model]"]) -> "type[Model]":
    """Resolve a schema class from its name, or return the class unchanged.

    Raises:
        InternalError: If no schema with that name was defined
    """
    if not isinstance(reference, str):
        return reference
    try:
        return _MODEL_REGISTRY[reference]
    except KeyError:
        raise InternalError(f"Unknown model class '{reference}'") from None


def registered_models() -> list["type[Model]"]:
    """Return every registered schema class."""
    return list(_MODEL_REGISTRY.values())
