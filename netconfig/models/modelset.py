"""Ordered collections of models with filtering, sorting and bulk mutation."""

import logging
import operator
import re
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterator, Optional, Union

from ..errors import InternalError, ValidationError

if TYPE_CHECKING:
    from .model import Model

logger = logging.getLogger(__name__)

LOOKUP_SEPARATOR = "__"
IDENTITY_ATTRIBUTES = ("id", "parent_id")
NATURAL_CHUNKS = re.compile(r"(\d+)")


class SortOrder(str, Enum):
    """Direction applied to every sort key of one ``sort`` call."""

    ASCENDING = "ascending"
    DESCENDING = "descending"

    @classmethod
    def parse(cls, value: Union[str, "SortOrder"]) -> "SortOrder":
        aliases = {"asc": cls.ASCENDING, "desc": cls.DESCENDING}
        if isinstance(value, str) and value.lower() in aliases:
            return aliases[value.lower()]
        try:
            return cls(value.lower() if isinstance(value, str) else value)
        except ValueError:
            raise ValidationError(
                f"Invalid sort order '{value}'", code="SORT_INVALID_ORDER", details={"sort_order": value}
            ) from None


class SortFlags(str, Enum):
    """Comparison semantics of sort keys."""

    REGULAR = "regular"
    NATURAL = "natural"

    @classmethod
    def parse(cls, value: Union[str, "SortFlags"]) -> "SortFlags":
        try:
            return cls(value.lower() if isinstance(value, str) else value)
        except ValueError:
            raise ValidationError(
                f"Invalid sort flags '{value}'", code="SORT_INVALID_FLAGS", details={"sort_flags": value}
            ) from None


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _ordered(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    """Wrap a comparison: numeric when both sides are numeric, else lexical."""

    def evaluate(value: Any, target: Any) -> bool:
        if value is None or target is None:
            return False
        left, right = _as_number(value), _as_number(target)
        if left is not None and right is not None:
            return compare(left, right)
        return compare(str(value), str(target))

    return evaluate


def _contains(value: Any, target: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (list, tuple, set)):
        return target in value
    return str(target) in str(value)


def _startswith(value: Any, target: Any) -> bool:
    return value is not None and str(value).startswith(str(target))


def _endswith(value: Any, target: Any) -> bool:
    return value is not None and str(value).endswith(str(target))


# Filter operators keyed by lookup suffix
OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "exact": operator.eq,
    "except": operator.ne,
    "startswith": _startswith,
    "endswith": _endswith,
    "contains": _contains,
    "lt": _ordered(operator.lt),
    "lte": _ordered(operator.le),
    "gt": _ordered(operator.gt),
    "gte": _ordered(operator.ge),
}


def regular_sort_key(value: Any) -> tuple:
    if value is None:
        return (0,)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    return (3, str(value))


def natural_sort_key(value: Any) -> tuple:
    """Sort key comparing embedded digit runs numerically ("2" < "10")."""
    if value is None:
        return (0,)
    chunks = NATURAL_CHUNKS.split(str(value))
    return (1, tuple((0, int(chunk), "") if chunk.isdigit() else (1, 0, chunk.lower()) for chunk in chunks))


class ModelSet:
    """Ordered, duplicate-free sequence of models of one schema."""

    def __init__(self, models: Iterable["Model"] = (), model_class: Optional["type[Model]"] = None):
        """Initialize the set.

        Args:
            models: Members, in order
            model_class: Schema of the members; inferred from the first member if omitted

        Raises:
            InternalError: If a member is not a model of the set's schema, or
                an identity appears twice
        """
        from .model import Model

        self._models = list(models)
        self.model_class = model_class
        self._invalidated = False

        seen = set()
        for member in self._models:
            if not isinstance(member, Model):
                raise InternalError(
                    f"ModelSet members must be models, got {type(member).__name__}",
                    code="MODELSET_INVALID_MEMBER",
                )
            if self.model_class is None:
                self.model_class = type(member)
            elif type(member) is not self.model_class:
                raise InternalError(
                    f"ModelSet of {self.model_class.__name__} cannot hold {type(member).__name__}",
                    code="MODELSET_INVALID_MEMBER",
                )
            key = (member.parent_id, member.id)
            if key in seen:
                raise InternalError(
                    f"ModelSet already holds {type(member).__name__} {member.identity}",
                    code="MODELSET_INVALID_MEMBER",
                )
            seen.add(key)

    def _check_valid(self) -> None:
        if self._invalidated:
            raise InternalError("ModelSet was invalidated by a bulk mutation", code="MODELSET_INVALIDATED")

    def _derive(self, models: Iterable["Model"]) -> "ModelSet":
        return ModelSet(models, model_class=self.model_class)

    def __iter__(self) -> Iterator["Model"]:
        self._check_valid()
        return iter(list(self._models))

    def __len__(self) -> int:
        return len(self._models)

    def __getitem__(self, index: int) -> "Model":
        self._check_valid()
        return self._models[index]

    def __repr__(self) -> str:
        name = self.model_class.__name__ if self.model_class else "Model"
        return f"ModelSet({name}, count={len(self._models)})"

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        self._check_valid()
        return bool(self._models)

    def count(self) -> int:
        self._check_valid()
        return len(self._models)

    def first(self) -> "Model":
        """Return the first member.

        Raises:
            InternalError: If the set is empty
        """
        self._check_valid()
        if not self._models:
            raise InternalError("Cannot take the first object of an empty ModelSet", code="MODELSET_EMPTY")
        return self._models[0]

    def to_representation(self, include_sensitive: bool = False) -> list[dict[str, Any]]:
        self._check_valid()
        return [model.to_representation(include_sensitive) for model in self._models]

    # ------------------------------------------------------------------
    # Query engine
    # ------------------------------------------------------------------

    def _known_attribute(self, name: str) -> bool:
        if name in IDENTITY_ATTRIBUTES:
            return True
        return self.model_class is not None and name in self.model_class._fields

    def parse_lookup(self, key: str) -> tuple[str, str]:
        """Split a filter key into ``(field, operator)``.

        Raises:
            ValidationError: If the field or operator is unknown
        """
        if self._known_attribute(key):
            return key, "exact"

        field_name, separator, op = key.rpartition(LOOKUP_SEPARATOR)
        if not separator:
            field_name, op = key, "exact"
        if not self._known_attribute(field_name):
            raise ValidationError(
                f"Cannot filter on unknown field '{field_name}'",
                code="QUERY_UNKNOWN_FIELD",
                field=field_name,
            )
        if op not in OPERATORS:
            raise ValidationError(
                f"Unsupported query operator '{op}' in '{key}'",
                code="QUERY_INVALID_OPERATOR",
                field=field_name,
                details={"operator": op, "supported": sorted(OPERATORS)},
            )
        return field_name, op

    def filter(self, filters: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> "ModelSet":
        """Return the members matching every filter."""
        self._check_valid()
        lookups = dict(filters or {})
        lookups.update(kwargs)

        clauses = []
        for key, target in lookups.items():
            field_name, op = self.parse_lookup(key)
            clauses.append((field_name, OPERATORS[op], target))

        matched = [
            model
            for model in self._models
            if all(compare(getattr(model, field_name), target) for field_name, compare, target in clauses)
        ]
        return self._derive(matched)

    def sort(
        self,
        keys: Union[str, list[str]],
        order: Union[str, SortOrder] = SortOrder.ASCENDING,
        flags: Union[str, SortFlags] = SortFlags.REGULAR,
    ) -> "ModelSet":
        """Return a stably sorted copy; the first key is the primary key."""
        self._check_valid()
        if isinstance(keys, str):
            keys = [keys]
        order = SortOrder.parse(order)
        flags = SortFlags.parse(flags)

        for key in keys:
            if not self._known_attribute(key):
                raise ValidationError(f"Cannot sort on unknown field '{key}'", code="SORT_UNKNOWN_FIELD", field=key)

        make_key = natural_sort_key if flags == SortFlags.NATURAL else regular_sort_key
        ordered = sorted(
            self._models,
            key=lambda model: tuple(make_key(getattr(model, key)) for key in keys),
            reverse=order == SortOrder.DESCENDING,
        )
        return self._derive(ordered)

    def paginate(self, limit: int = 0, offset: int = 0) -> "ModelSet":
        """Return a window of the set; a zero limit means no limit."""
        self._check_valid()
        if limit < 0 or offset < 0:
            raise ValidationError(
                "limit and offset must not be negative",
                code="QUERY_INVALID_PAGINATION",
                details={"limit": limit, "offset": offset},
            )
        end = offset + limit if limit else None
        return self._derive(self._models[offset:end])

    def query(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        limit: int = 0,
        offset: int = 0,
        sort_by: Optional[Union[str, list[str]]] = None,
        sort_order: Union[str, SortOrder] = SortOrder.ASCENDING,
        sort_flags: Union[str, SortFlags] = SortFlags.REGULAR,
    ) -> "ModelSet":
        """Filter, then sort, then paginate."""
        result = self.filter(filters)
        if sort_by:
            result = result.sort(sort_by, order=sort_order, flags=sort_flags)
        return result.paginate(limit=limit, offset=offset)

    def reverse(self) -> "ModelSet":
        self._check_valid()
        return self._derive(reversed(self._models))

    # ------------------------------------------------------------------
    # Bulk mutation
    # ------------------------------------------------------------------

    def delete(self) -> "ModelSet":
        """Delete every member through its own ``delete``.

        The first failure aborts the batch, leaving later members untouched,
        and is raised as is. The set cannot be used afterwards either way.

        Returns:
            The deleted members
        """
        self._check_valid()
        deleted = []
        deferred = False
        try:
            for model in self._models:
                model.delete(spawn=False)
                deleted.append(model)
                deferred = deferred or not model.always_apply
        finally:
            self._invalidated = True
            if deferred:
                self.model_class.get_dispatcher(deleted[0].context).spawn()
            logger.info(f"Bulk deleted {len(deleted)} of {len(self._models)} {self.model_class.__name__} object(s)")

        return ModelSet(deleted, model_class=self.model_class)
