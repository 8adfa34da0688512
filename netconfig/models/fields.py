"""Declarative field descriptors.

Fields are declared as class attributes of a Model subclass. Each descriptor
holds the constraints of one value; the value itself lives on the model
instance. ``Field.clean`` runs the whole per-field validation pipeline:

1. An inapplicable field (condition false) skips every check and falls back
   to its default, unless ``allow_out_of_condition`` keeps a supplied value.
2. A missing value fails when the field is required, else takes the default.
3. Null, type, empty string, choices and bounds checks, each with its own code.
4. Declared validators, in order.
5. Sibling uniqueness for ``unique`` fields.
"""

import copy
import logging
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Optional, Union

from ..errors import ValidationError
from ..validator.references import ReferenceValidator
from ..validator.rules import Validator
from .conditions import Condition

if TYPE_CHECKING:
    from .model import Model

logger = logging.getLogger(__name__)

REDACTED = "********"


class _Missing:
    """Marker for a value that was not supplied at all."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


class FieldType(str, Enum):
    """Value kinds a field can hold."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"


class Field:
    """Base field descriptor."""

    field_type: FieldType = FieldType.STRING

    def __init__(
        self,
        default: Any = None,
        *,
        required: bool = False,
        allow_null: bool = False,
        allow_empty: bool = False,
        read_only: bool = False,
        representation_only: bool = False,
        sensitive: bool = False,
        internal_name: Optional[str] = None,
        choices: Optional[Iterable[Any]] = None,
        minimum: Optional[float] = None,
        maximum: Optional[float] = None,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
        many: bool = False,
        many_minimum: Optional[int] = None,
        many_maximum: Optional[int] = None,
        delimiter: Optional[str] = ",",
        unique: bool = False,
        validators: Iterable[Validator] = (),
        conditions: Optional[Mapping[str, Any]] = None,
        allow_out_of_condition: bool = False,
        references: Optional[str] = None,
        description: str = "",
    ):
        """Initialize the field.

        Args:
            default: Value used when none is supplied (callables are called)
            required: Whether a value must be supplied when the field applies
            allow_null: Whether None is an accepted value
            allow_empty: Whether an empty string is an accepted value
            read_only: Ignore supplied values; only a ``validates`` hook sets the value
            representation_only: Exclude from the internal form (derived at read time)
            sensitive: Redact the value in logs and representations
            internal_name: Key used in the backing store (defaults to the field name)
            choices: Accepted discrete values
            minimum: Inclusive numeric lower bound
            maximum: Inclusive numeric upper bound
            min_length: Minimum string length
            max_length: Maximum string length
            many: Whether the field holds a list of values
            many_minimum: Minimum number of items for ``many`` fields
            many_maximum: Maximum number of items for ``many`` fields
            delimiter: Joins ``many`` values into one internal string; None keeps a list
            unique: Value must be unique among sibling objects
            validators: Validators run in order on each value
            conditions: Applicability condition (see ``Condition``)
            allow_out_of_condition: Keep supplied values while inapplicable
            references: ``"Model.field"`` the value must match; also guards deletion
            description: Human-readable description
        """
        self.name: Optional[str] = None
        self.default = default
        self.required = required
        self.allow_null = allow_null
        self.allow_empty = allow_empty
        self.read_only = read_only
        self.representation_only = representation_only
        self.sensitive = sensitive
        self._internal_name = internal_name
        self.choices = list(choices) if choices is not None else None
        self.minimum = minimum
        self.maximum = maximum
        self.min_length = min_length
        self.max_length = max_length
        self.many = many
        self.many_minimum = many_minimum
        self.many_maximum = many_maximum
        self.delimiter = delimiter
        self.unique = unique
        self.validators = list(validators)
        self.condition = Condition(conditions) if conditions else None
        self.allow_out_of_condition = allow_out_of_condition
        self.description = description

        self.references: Optional[tuple[str, str]] = None
        if references:
            model_name, _, field_name = references.partition(".")
            self.references = (model_name, field_name)
            self.validators.append(ReferenceValidator(model_name, field_name))

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Optional["Model"], owner: type) -> Any:
        if instance is None:
            return self
        return instance._values.get(self.name, self.get_default())

    def __set__(self, instance: "Model", value: Any) -> None:
        raise AttributeError(
            f"Field '{self.name}' is set through create() or update(), not assignment"
        )

    @property
    def internal_name(self) -> str:
        return self._internal_name or self.name

    def get_default(self) -> Any:
        """Return a fresh copy of the default value."""
        default = self.default() if callable(self.default) else self.default
        if default in (None, "") and self.many and not self.allow_null:
            return []
        return copy.deepcopy(default)

    def is_applicable(self, values: Mapping[str, Any]) -> bool:
        """Evaluate the field's condition against the model's other values."""
        if self.condition is None:
            return True
        return self.condition.evaluate(values)

    def error(self, message: str, code: str, value: Any = None) -> ValidationError:
        return ValidationError(
            f"Field '{self.name}' {message}",
            code=code,
            field=self.name,
            value=REDACTED if self.sensitive else value,
        )

    # ------------------------------------------------------------------
    # Validation pipeline
    # ------------------------------------------------------------------

    def clean(self, value: Any, model: Optional["Model"], values: Mapping[str, Any]) -> Any:
        """Validate a supplied value and return the value to store.

        Args:
            value: Supplied value, or MISSING
            model: Model owning the field
            values: Current values of the model's fields, for the condition

        Returns:
            The validated value

        Raises:
            ValidationError: If any constraint fails
        """
        if not self.is_applicable(values):
            if value is not MISSING and self.allow_out_of_condition:
                return value
            logger.debug(f"Field {self.name} does not apply, using default")
            return self.get_default()

        if value is MISSING:
            if self.required:
                raise self.error("is required", "FIELD_REQUIRED")
            return self.get_default()

        if value is None:
            if self.allow_null:
                return None
            raise self.error("cannot be null", "FIELD_NULL_NOT_ALLOWED")

        if self.many:
            value = self._clean_many(value, model)
        else:
            value = self._clean_item(value, model)

        if self.unique and model is not None:
            self.check_unique(value, model)

        return value

    def _clean_many(self, value: Any, model: Optional["Model"]) -> list[Any]:
        if not isinstance(value, (list, tuple)):
            raise self.error("must be a list", "FIELD_INVALID_TYPE", value)

        if self.many_minimum is not None and len(value) < self.many_minimum:
            raise self.error(
                f"must have at least {self.many_minimum} item(s)", "FIELD_TOO_FEW_ITEMS", value
            )
        if self.many_maximum is not None and len(value) > self.many_maximum:
            raise self.error(
                f"must have at most {self.many_maximum} item(s)", "FIELD_TOO_MANY_ITEMS", value
            )

        return [self._clean_item(item, model) for item in value]

    def _clean_item(self, value: Any, model: Optional["Model"]) -> Any:
        value = self.coerce(value)

        if value == "" and not self.allow_empty:
            raise self.error("cannot be empty", "FIELD_EMPTY_NOT_ALLOWED", value)

        if self.choices is not None and value not in self.choices:
            raise self.error(
                f"must be one of {self.choices}, got {value!r}", "FIELD_INVALID_CHOICE", value
            )

        self.check_bounds(value)

        for validator in self.validators:
            value = validator.validate(value, self.name, model)

        return value

    def coerce(self, value: Any) -> Any:
        """Check the value's type and return it in canonical form."""
        return value

    def check_bounds(self, value: Any) -> None:
        if isinstance(value, str):
            if self.min_length is not None and len(value) < self.min_length:
                raise self.error(
                    f"must be at least {self.min_length} characters", "FIELD_LENGTH_TOO_SHORT", value
                )
            if self.max_length is not None and len(value) > self.max_length:
                raise self.error(
                    f"must be at most {self.max_length} characters", "FIELD_LENGTH_TOO_LONG", value
                )
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            if self.minimum is not None and value < self.minimum:
                raise self.error(f"must be at least {self.minimum}", "FIELD_VALUE_TOO_SMALL", value)
            if self.maximum is not None and value > self.maximum:
                raise self.error(f"must be at most {self.maximum}", "FIELD_VALUE_TOO_LARGE", value)

    def check_unique(self, value: Any, model: "Model") -> None:
        """Fail when a sibling object already holds ``value``."""
        internal = self.to_internal(value)
        for sibling_id, record in model.sibling_records().items():
            if sibling_id == model.id:
                continue
            if record.get(self.internal_name) == internal:
                raise self.error(
                    f"must be unique, '{value}' is already used by object {sibling_id}",
                    "FIELD_MUST_BE_UNIQUE",
                    value,
                )

    # ------------------------------------------------------------------
    # Internal form translation
    # ------------------------------------------------------------------

    def to_internal(self, value: Any) -> Any:
        """Convert a validated value to its backing-store representation."""
        if value is None:
            return None
        if self.many:
            items = [self.item_to_internal(item) for item in value]
            if self.delimiter is None:
                return items
            return self.delimiter.join(str(item) for item in items)
        return self.item_to_internal(value)

    def from_internal(self, stored: Any) -> Any:
        """Convert a backing-store value to the external value."""
        if stored is None:
            return self.get_default()
        if self.many:
            if isinstance(stored, list):
                items = stored
            elif stored == "":
                items = []
            elif self.delimiter is None:
                items = [stored]
            else:
                items = str(stored).split(self.delimiter)
            return [self.item_from_internal(item) for item in items]
        return self.item_from_internal(stored)

    def item_to_internal(self, value: Any) -> Any:
        return value

    def item_from_internal(self, stored: Any) -> Any:
        return stored

    def represent(self, value: Any, include_sensitive: bool = False) -> Any:
        """Return the value as exposed to callers."""
        if self.sensitive and not include_sensitive and value not in (None, "", []):
            return REDACTED
        return copy.deepcopy(value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class StringField(Field):
    """Field holding text."""

    field_type = FieldType.STRING

    def __init__(self, default: Any = "", **kwargs: Any):
        super().__init__(default, **kwargs)

    def coerce(self, value: Any) -> Any:
        if not isinstance(value, str):
            raise self.error(
                f"must be a string, got {type(value).__name__}", "FIELD_INVALID_TYPE", value
            )
        return value

    def item_from_internal(self, stored: Any) -> Any:
        return str(stored)


class IntegerField(Field):
    """Field holding an integer, stored as a decimal string."""

    field_type = FieldType.INTEGER

    def coerce(self, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, int):
            raise self.error(
                f"must be an integer, got {type(value).__name__}", "FIELD_INVALID_TYPE", value
            )
        return value

    def item_to_internal(self, value: Any) -> Any:
        return str(value)

    def item_from_internal(self, stored: Any) -> Any:
        try:
            return int(stored)
        except (TypeError, ValueError):
            logger.warning(f"Stored value {stored!r} for {self.name} is not an integer")
            return stored


class FloatField(Field):
    """Field holding a floating point number, stored as a string."""

    field_type = FieldType.FLOAT

    def coerce(self, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise self.error(
                f"must be a number, got {type(value).__name__}", "FIELD_INVALID_TYPE", value
            )
        return float(value)

    def item_to_internal(self, value: Any) -> Any:
        return str(value)

    def item_from_internal(self, stored: Any) -> Any:
        try:
            return float(stored)
        except (TypeError, ValueError):
            logger.warning(f"Stored value {stored!r} for {self.name} is not a number")
            return stored


class BooleanField(Field):
    """Field holding a boolean, stored as configurable true/false markers.

    By default a true value is stored as ``"yes"`` and a false value is
    omitted from the internal form entirely.
    """

    field_type = FieldType.BOOLEAN

    def __init__(
        self,
        default: Any = False,
        *,
        internal_true: Union[str, bool] = "yes",
        internal_false: Optional[Union[str, bool]] = None,
        **kwargs: Any,
    ):
        super().__init__(default, **kwargs)
        self.internal_true = internal_true
        self.internal_false = internal_false

    def coerce(self, value: Any) -> Any:
        if not isinstance(value, bool):
            raise self.error(
                f"must be a boolean, got {type(value).__name__}", "FIELD_INVALID_TYPE", value
            )
        return value

    def item_to_internal(self, value: Any) -> Any:
        return self.internal_true if value else self.internal_false

    def from_internal(self, stored: Any) -> Any:
        if stored is None and self.internal_false is None and not self.many:
            return False
        return super().from_internal(stored)

    def item_from_internal(self, stored: Any) -> Any:
        return stored == self.internal_true
