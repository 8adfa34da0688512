"""Declarative configuration object engine.

Schemas are Model subclasses built from Field descriptors. Models validate
input, persist their internal form through a config store, and apply changes
to the live system either inline or through a background apply dispatcher.
"""

from .context import ModelContext, SystemControl
from .errors import (
    ERROR_CODES,
    ConflictError,
    ErrorResponse,
    ForbiddenError,
    InternalError,
    NetConfigError,
    NotFoundError,
    ValidationError,
)
from .models import (
    BooleanField,
    Condition,
    Field,
    FloatField,
    IntegerField,
    Model,
    ModelSet,
    SortFlags,
    SortOrder,
    StringField,
    derives,
    validates,
)
from .privileges import Authorizer, Operation, StaticAuthorizer, require_privilege
from .settings import EngineSettings, configure_logging, load_settings

__version__ = "1.0.0"

__all__ = [
    "ModelContext",
    "SystemControl",
    "ERROR_CODES",
    "ErrorResponse",
    "NetConfigError",
    "ValidationError",
    "ConflictError",
    "ForbiddenError",
    "NotFoundError",
    "InternalError",
    "Field",
    "StringField",
    "IntegerField",
    "FloatField",
    "BooleanField",
    "Condition",
    "Model",
    "ModelSet",
    "SortOrder",
    "SortFlags",
    "validates",
    "derives",
    "Operation",
    "Authorizer",
    "StaticAuthorizer",
    "require_privilege",
    "EngineSettings",
    "load_settings",
    "configure_logging",
]
