"""Declarative schema framework: fields, models and model sets."""

from .conditions import Condition
from .fields import (
    MISSING,
    REDACTED,
    BooleanField,
    Field,
    FieldType,
    FloatField,
    IntegerField,
    StringField,
)
from .model import Model, derives, validates
from .modelset import ModelSet, SortFlags, SortOrder
from .registry import get_model_class, registered_models

__all__ = [
    "Condition",
    "Field",
    "FieldType",
    "StringField",
    "IntegerField",
    "FloatField",
    "BooleanField",
    "MISSING",
    "REDACTED",
    "Model",
    "ModelSet",
    "SortOrder",
    "SortFlags",
    "validates",
    "derives",
    "get_model_class",
    "registered_models",
]
