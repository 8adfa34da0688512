"""Validators that look at other persisted objects."""

import logging
from typing import TYPE_CHECKING, Any, Optional, Union

from .rules import Validator

if TYPE_CHECKING:
    from ..models.model import Model

logger = logging.getLogger(__name__)


def _matches(candidate: Any, value: Any) -> bool:
    if isinstance(candidate, list):
        return value in candidate
    return candidate == value


class UniqueFieldValidator(Validator):
    """Fail when any existing object of a target schema holds the same value.

    Unlike the ``unique`` field flag, which only looks at siblings of the same
    schema and parent, this validator checks a whole schema, in every parent
    scope, and may target a schema other than the field's own.
    """

    code = "FIELD_MUST_BE_UNIQUE"

    def __init__(self, model_class: Union[str, "type[Model]"], field_name: str):
        """Initialize the validator.

        Args:
            model_class: Target schema class or its registered name
            field_name: Field of the target schema to compare against
        """
        self.model_class = model_class
        self.field_name = field_name

    def validate(self, value: Any, field_name: str = "value", model: Optional["Model"] = None) -> Any:
        if model is None:
            return value

        from ..models.registry import get_model_class

        target = get_model_class(self.model_class)
        for other in target.read_all(model.context):
            if other.same_identity(model):
                continue
            if _matches(getattr(other, self.field_name), value):
                raise self.fail(
                    field_name,
                    value,
                    f"must be unique, '{value}' is already used by "
                    f"{target.__name__} {other.identity}",
                )
        return value

    def __repr__(self) -> str:
        return f"UniqueFieldValidator({self.model_class!r}, {self.field_name!r})"


class ReferenceValidator(Validator):
    """Require the value to match a field of an existing object of a target schema."""

    code = "FIELD_REFERENCE_NOT_FOUND"

    def __init__(self, model_class: Union[str, "type[Model]"], field_name: str):
        """Initialize the validator.

        Args:
            model_class: Referenced schema class or its registered name
            field_name: Field of the referenced schema holding the key
        """
        self.model_class = model_class
        self.field_name = field_name

    def validate(self, value: Any, field_name: str = "value", model: Optional["Model"] = None) -> Any:
        if model is None:
            return value

        from ..models.registry import get_model_class

        target = get_model_class(self.model_class)
        for other in target.read_all(model.context):
            if getattr(other, self.field_name) == value:
                return value

        raise self.fail(
            field_name,
            value,
            f"references {target.__name__} with {self.field_name} '{value}' which does not exist",
        )

    def __repr__(self) -> str:
        return f"ReferenceValidator({self.model_class!r}, {self.field_name!r})"
