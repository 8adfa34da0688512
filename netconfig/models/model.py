"""Model base class: one configuration object and its lifecycle.

A schema is a Model subclass declaring Field descriptors as class attributes.
The ordered field table and the per-field hook registry are built once, when
the subclass is defined:

    class VirtualIP(Model):
        config_path = "virtualip.vip"
        many = True

        interface = StringField(required=True, references="Interface.name")
        subnet = StringField(required=True, unique=True, validators=[IPAddressValidator()])
        mode = StringField(default="ipalias", choices=["ipalias", "carp"])
        vhid = IntegerField(conditions={"mode": "carp"}, required=True, minimum=1, maximum=255)

        @validates("subnet")
        def check_subnet(self, value):
            ...
            return value

        def apply(self):
            self.context.system.run("reconfigure_vip", subnet=self.subnet)

Collection schemas (``many = True``) are stored at ``config_path`` as a mapping
from object id to internal form. Nested schemas set ``parent_model_class`` and
live inside their parent object's stored record.
"""

import contextlib
import logging
import threading
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Iterator, Optional, Union

from ..errors import ConflictError, InternalError, NotFoundError, ValidationError
from ..privileges import Operation, privilege_name, schema_slug
from ..storage import ConfigStore, join_path, split_path
from .fields import MISSING, REDACTED, Field
from .registry import get_model_class, register_model, registered_models

if TYPE_CHECKING:
    from ..context import ModelContext
    from ..dispatch import ApplyDispatcher
    from .modelset import ModelSet

logger = logging.getLogger(__name__)

SINGLETON_IDENTITY = "singleton"
IDENTITY_SEPARATOR = ":"
RESERVED_INPUT_KEYS = ("id", "parent_id")

# Next id per (store key, collection path); store objects on one file share a key
_ID_HIGH_WATER: dict[tuple[str, str], int] = {}
_ID_LOCK = threading.Lock()


def validates(field_name: str) -> Callable:
    """Register a method as the extra validation hook for ``field_name``.

    The hook runs after the field's own checks and must return the value to
    store or raise ValidationError.
    """

    def decorator(func: Callable) -> Callable:
        func._validates_field = field_name
        return func

    return decorator


def derives(field_name: str) -> Callable:
    """Register a method computing a representation-only field at read time."""

    def decorator(func: Callable) -> Callable:
        func._derives_field = field_name
        return func

    return decorator


def allocate_id(store: ConfigStore, path: str, existing_ids: list[int]) -> int:
    """Return the next unused id for a collection, never reusing a freed one."""
    key = (store.store_key, path)
    with _ID_LOCK:
        next_id = max([_ID_HIGH_WATER.get(key, 0)] + [i + 1 for i in existing_ids])
        _ID_HIGH_WATER[key] = next_id + 1
        return next_id


@contextlib.contextmanager
def restore_on_error(store: ConfigStore, path: str) -> Iterator[None]:
    """Put the subtree at ``path`` back the way it was if the block raises."""
    previous = store.get(path)
    try:
        yield
    except Exception:
        if store.get(path) != previous:
            if previous is None:
                store.delete(path)
            else:
                store.set(path, previous)
            logger.debug(f"Rolled back uncommitted writes below {path}")
        raise


def parse_identity(identity: str) -> tuple[Optional[int], Optional[int]]:
    """Split a staged identity back into ``(parent_id, id)``."""
    if identity == SINGLETON_IDENTITY:
        return None, None
    if IDENTITY_SEPARATOR in identity:
        parent_id, _, object_id = identity.partition(IDENTITY_SEPARATOR)
        return int(parent_id), int(object_id)
    return None, int(identity)


class Model:
    """Base class for configuration object schemas."""

    abstract: ClassVar[bool] = True
    config_path: ClassVar[str] = ""
    many: ClassVar[bool] = False
    always_apply: ClassVar[bool] = False
    parent_model_class: ClassVar[Optional[Union[str, "type[Model]"]]] = None
    privilege_prefix: ClassVar[Optional[str]] = None
    verbose_name: ClassVar[Optional[str]] = None

    _fields: ClassVar[dict[str, Field]] = {}
    _validate_hooks: ClassVar[dict[str, Callable]] = {}
    _derive_hooks: ClassVar[dict[str, Callable]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)

        fields: dict[str, Field] = {}
        validate_hooks: dict[str, Callable] = {}
        derive_hooks: dict[str, Callable] = {}
        for base in reversed(cls.__mro__[1:]):
            fields.update(getattr(base, "_fields", {}))
            validate_hooks.update(getattr(base, "_validate_hooks", {}))
            derive_hooks.update(getattr(base, "_derive_hooks", {}))

        for name, attr in cls.__dict__.items():
            if isinstance(attr, Field):
                fields[name] = attr
            elif callable(attr) and hasattr(attr, "_validates_field"):
                validate_hooks[attr._validates_field] = attr
            elif callable(attr) and hasattr(attr, "_derives_field"):
                derive_hooks[attr._derives_field] = attr

        for hooked in list(validate_hooks) + list(derive_hooks):
            if hooked not in fields:
                raise InternalError(f"{cls.__name__} has a hook for unknown field '{hooked}'")

        cls._fields = fields
        cls._validate_hooks = validate_hooks
        cls._derive_hooks = derive_hooks

        if "abstract" not in cls.__dict__:
            cls.abstract = False
        if not cls.abstract:
            if not cls.config_path:
                raise InternalError(f"{cls.__name__} must define config_path")
            register_model(cls)

    def __init__(
        self,
        context: "ModelContext",
        data: Optional[Mapping[str, Any]] = None,
        *,
        id: Optional[int] = None,
        parent_id: Optional[int] = None,
    ):
        """Initialize a model instance.

        Args:
            context: Collaborators for this request
            data: Input data used by ``create``/``update`` when they get none
            id: Object id for collection schemas
            parent_id: Parent object id for nested schemas
        """
        if self.abstract:
            raise InternalError(f"{type(self).__name__} is abstract and cannot be instantiated")

        self.context = context
        self.initial_data = dict(data) if data is not None else None
        self.id = id
        self.parent_id = parent_id
        self._values: dict[str, Any] = {name: field.get_default() for name, field in self._fields.items()}
        self._extra_internal: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Schema introspection
    # ------------------------------------------------------------------

    @classmethod
    def get_fields(cls) -> dict[str, Field]:
        """Ordered mapping of field name to descriptor."""
        return dict(cls._fields)

    @classmethod
    def get_parent_class(cls) -> Optional["type[Model]"]:
        if cls.parent_model_class is None:
            return None
        return get_model_class(cls.parent_model_class)

    @classmethod
    def is_nested(cls) -> bool:
        return cls.parent_model_class is not None

    @classmethod
    def get_verbose_name(cls) -> str:
        return cls.verbose_name or schema_slug(cls.__name__).replace("-", " ")

    @classmethod
    def privilege(cls, operation: Operation) -> str:
        """Privilege the transport layer must check before ``operation``."""
        return privilege_name(cls, operation)

    @classmethod
    def privileges(cls) -> dict[str, str]:
        """Privilege required for every operation category."""
        return {operation.value: cls.privilege(operation) for operation in Operation}

    @classmethod
    def dispatcher_name(cls) -> str:
        return schema_slug(cls.__name__)

    @property
    def identity(self) -> str:
        """Stable key of this object, used for staging pending changes."""
        if not self.many:
            return SINGLETON_IDENTITY
        if self.is_nested():
            return f"{self.parent_id}{IDENTITY_SEPARATOR}{self.id}"
        return str(self.id)

    def same_identity(self, other: "Model") -> bool:
        return type(self) is type(other) and self.identity == other.identity

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    @classmethod
    def collection_path(cls, parent_id: Optional[int] = None) -> str:
        """Store path of the collection (or singleton) in a parent scope."""
        parent_class = cls.get_parent_class()
        if parent_class is None:
            return cls.config_path
        if parent_id is None:
            raise InternalError(f"{cls.__name__} is nested and requires a parent_id", code="MODEL_MISSING_ID")
        return join_path(parent_class.object_path(parent_id), cls.config_path)

    @classmethod
    def object_path(cls, id: Optional[int], parent_id: Optional[int] = None) -> str:
        """Store path of one object."""
        if not cls.many:
            return cls.collection_path(parent_id)
        if id is None:
            raise InternalError(f"{cls.__name__} requires an object id", code="MODEL_MISSING_ID")
        return join_path(cls.collection_path(parent_id), id)

    @classmethod
    def load_records(cls, context: "ModelContext", parent_id: Optional[int] = None) -> dict[int, dict[str, Any]]:
        """Load the collection's internal forms keyed by object id, in store order."""
        stored = context.store.get(cls.collection_path(parent_id), {})

        if isinstance(stored, list):
            items = list(enumerate(stored))
        elif isinstance(stored, dict):
            items = []
            for key, record in stored.items():
                try:
                    items.append((int(key), record))
                except (TypeError, ValueError):
                    logger.warning(f"Skipping {cls.__name__} record with non-integer id {key!r}")
        else:
            logger.warning(f"Ignoring malformed {cls.__name__} collection at {cls.collection_path(parent_id)}")
            items = []

        return {object_id: (record if isinstance(record, dict) else {}) for object_id, record in items}

    @classmethod
    def parent_scopes(cls, context: "ModelContext") -> list[Optional[int]]:
        """Parent ids whose collections hold objects of this schema."""
        parent_class = cls.get_parent_class()
        if parent_class is None:
            return [None]
        return [parent.id for parent in parent_class.read_all(context)]

    @classmethod
    def _check_parent(cls, context: "ModelContext", parent_id: Optional[int]) -> None:
        parent_class = cls.get_parent_class()
        if parent_class is None:
            return
        if parent_id is None:
            raise InternalError(f"{cls.__name__} is nested and requires a parent_id", code="MODEL_MISSING_ID")
        if context.store.get(parent_class.object_path(parent_id)) is None:
            raise NotFoundError(
                f"{parent_class.get_verbose_name()} {parent_id} does not exist",
                code="PARENT_NOT_FOUND",
                details={"parent_id": parent_id},
            )

    def sibling_records(self) -> dict[int, dict[str, Any]]:
        """Internal forms of every object in this object's scope."""
        if not self.many:
            return {}
        return self.load_records(self.context, self.parent_id)

    @classmethod
    def _root_path(cls, parent_id: Optional[int] = None) -> str:
        # Top-level store key holding the collection, parents included
        return split_path(cls.collection_path(parent_id))[0]

    def _write(self) -> None:
        store = self.context.store
        if self.many:
            collection = self.collection_path(self.parent_id)
            if isinstance(store.get(collection), list):
                records = self.load_records(self.context, self.parent_id)
                store.set(collection, {str(key): value for key, value in records.items()})
        store.set(self.object_path(self.id, self.parent_id), self.to_internal())

    # ------------------------------------------------------------------
    # Representation
    # ------------------------------------------------------------------

    def to_internal(self) -> dict[str, Any]:
        """Return the backing-store form of this object."""
        internal = dict(self._extra_internal)
        for name, field in self._fields.items():
            if field.representation_only:
                continue
            value = field.to_internal(self._values.get(name))
            if value is None:
                internal.pop(field.internal_name, None)
            else:
                internal[field.internal_name] = value
        return internal

    @classmethod
    def from_internal(
        cls,
        context: "ModelContext",
        internal: Mapping[str, Any],
        id: Optional[int] = None,
        parent_id: Optional[int] = None,
        derive: bool = True,
    ) -> "Model":
        """Build a model from its backing-store form."""
        model = cls(context, id=id, parent_id=parent_id)
        internal = dict(internal or {})
        known = set()

        for name, field in cls._fields.items():
            if field.representation_only:
                continue
            known.add(field.internal_name)
            model._values[name] = field.from_internal(internal.get(field.internal_name))

        model._extra_internal = {key: value for key, value in internal.items() if key not in known}

        if derive:
            model._derive()
        return model

    def _derive(self) -> None:
        for name, hook in self._derive_hooks.items():
            try:
                self._values[name] = hook(self)
            except Exception as e:
                logger.warning(f"Could not derive {type(self).__name__}.{name} for {self.identity}: {e}")
                self._values[name] = None

    def to_representation(self, include_sensitive: bool = False) -> dict[str, Any]:
        """Return the external representation of this object."""
        representation: dict[str, Any] = {}
        if self.many:
            representation["id"] = self.id
        if self.is_nested():
            representation["parent_id"] = self.parent_id
        for name, field in self._fields.items():
            representation[name] = field.represent(self._values.get(name), include_sensitive)
        return representation

    def __repr__(self) -> str:
        shown = ", ".join(
            f"{name}={REDACTED if field.sensitive else self._values.get(name)!r}"
            for name, field in self._fields.items()
        )
        return f"{type(self).__name__}(identity={self.identity!r}, {shown})"

    # ------------------------------------------------------------------
    # Validation pipeline
    # ------------------------------------------------------------------

    def validate(self, data: Mapping[str, Any], current: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
        """Run every field's checks, then ``validate_extra``.

        Args:
            data: Supplied input
            current: Current values for updates; missing input keeps them

        Returns:
            The validated values, also installed on the model

        Raises:
            ValidationError: If any check fails; the model is left unchanged
        """
        if not isinstance(data, Mapping):
            raise ValidationError(f"Input for {self.get_verbose_name()} must be a mapping", code="MODEL_INVALID_INPUT")

        unknown = [key for key in data if key not in self._fields and key not in RESERVED_INPUT_KEYS]
        if unknown:
            raise ValidationError(
                f"Unknown field(s) for {self.get_verbose_name()}: {', '.join(sorted(unknown))}",
                code="FIELD_UNKNOWN",
                field=unknown[0],
                details={"fields": sorted(unknown)},
            )

        supplied: dict[str, Any] = {}
        for name, field in self._fields.items():
            if field.representation_only:
                continue
            if field.read_only:
                if name in data:
                    logger.debug(f"Ignoring supplied value for read-only field {name}")
                supplied[name] = current.get(name) if current else field.get_default()
            elif name in data:
                supplied[name] = data[name]
            elif current is not None and self._carried_over(field, current.get(name)):
                supplied[name] = current[name]
            else:
                supplied[name] = MISSING

        previous = self._values
        working = dict(previous)
        working.update({name: value for name, value in supplied.items() if value is not MISSING})
        self._values = working

        try:
            for name, value in supplied.items():
                field = self._fields[name]
                if field.read_only:
                    # Current or default value; only the schema's own hook may change it
                    cleaned = value
                else:
                    cleaned = field.clean(value, self, working)
                hook = self._validate_hooks.get(name)
                if hook is not None and field.is_applicable(working):
                    cleaned = hook(self, cleaned)
                working[name] = cleaned
                if not field.sensitive:
                    logger.debug(f"Validated {type(self).__name__}.{name} = {cleaned!r}")

            self.validate_extra()
        except Exception:
            self._values = previous
            raise

        return dict(working)

    @staticmethod
    def _carried_over(field: Field, value: Any) -> bool:
        # Unset or defaulted current values are treated as not supplied
        if value is None:
            return False
        return field.required or value != field.get_default()

    def validate_extra(self) -> None:
        """Whole-object checks run after every field passed; raise ValidationError."""

    # ------------------------------------------------------------------
    # Apply hooks
    # ------------------------------------------------------------------

    def apply(self) -> None:
        """Make the live system reflect this object's persisted state."""
        logger.debug(f"No apply action defined for {type(self).__name__}")

    def apply_delete(self) -> None:
        """Make the live system reflect this object's removal."""
        logger.debug(f"No apply_delete action defined for {type(self).__name__}")

    def check_delete(self) -> None:
        """Schema-specific dependency guard; raise ConflictError to refuse deletion."""

    @classmethod
    def get_dispatcher(cls, context: "ModelContext") -> "ApplyDispatcher":
        def handler(identity: str, payload: Optional[dict[str, Any]]) -> None:
            cls.apply_staged(context, identity, payload)

        return context.dispatchers.get(cls.dispatcher_name(), handler)

    @classmethod
    def apply_staged(cls, context: "ModelContext", identity: str, payload: Optional[dict[str, Any]]) -> None:
        """Apply one staged record; run by the apply worker."""
        parent_id, object_id = parse_identity(identity)
        payload = payload or {}
        model = cls.from_internal(
            context, payload.get("internal") or {}, id=object_id, parent_id=parent_id, derive=False
        )
        if payload.get("deleted"):
            model.apply_delete()
        else:
            model.apply()

    def _after_write(self, deleted: bool = False, spawn: bool = True) -> None:
        if self.always_apply:
            try:
                if deleted:
                    self.apply_delete()
                else:
                    self.apply()
            except Exception as e:
                logger.error(
                    f"Failed to apply {type(self).__name__} {self.identity}; persisted "
                    f"configuration and live state may diverge: {e}"
                )
            return

        dispatcher = self.get_dispatcher(self.context)
        dispatcher.stage(self.identity, {"deleted": deleted, "internal": self.to_internal()})
        if spawn:
            dispatcher.spawn()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _input(self, data: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
        if data is not None:
            return data
        return self.initial_data or {}

    def _create_locked(self, data: Mapping[str, Any]) -> None:
        self._check_parent(self.context, self.parent_id)
        if self.many:
            self.id = None
        self.validate(data)
        if self.many:
            path = self.collection_path(self.parent_id)
            self.id = allocate_id(self.context.store, path, list(self.sibling_records()))
        else:
            stored = self.context.store.get(self.collection_path(self.parent_id))
            if isinstance(stored, dict):
                known = {field.internal_name for field in self._fields.values()}
                self._extra_internal = {k: v for k, v in stored.items() if k not in known}
        self._write()

    def create(self, data: Optional[Mapping[str, Any]] = None) -> "Model":
        """Validate, persist and apply a new object.

        Raises:
            ValidationError: If the input is invalid; nothing is persisted
            NotFoundError: If the parent object of a nested schema is missing
        """
        data = self._input(data)
        store = self.context.store
        with store.lock(), restore_on_error(store, self._root_path(self.parent_id)):
            self._create_locked(data)
            store.commit(f"Added {self.get_verbose_name()} {self.identity}")

        logger.info(f"Created {type(self).__name__} {self.identity}")
        self._derive()
        self._after_write()
        return self

    def _load_current(self) -> dict[str, Any]:
        if self.many and self.id is None:
            raise InternalError(f"{type(self).__name__} operation requires an id", code="MODEL_MISSING_ID")
        self._check_parent(self.context, self.parent_id)

        record = self.context.store.get(self.object_path(self.id, self.parent_id))
        if record is None and self.many:
            raise NotFoundError(
                f"{self.get_verbose_name()} {self.identity} does not exist",
                details={"id": self.id, "parent_id": self.parent_id},
            )
        current = self.from_internal(self.context, record or {}, self.id, self.parent_id, derive=False)
        self._values = current._values
        self._extra_internal = current._extra_internal
        return dict(current._values)

    def update(self, data: Optional[Mapping[str, Any]] = None) -> "Model":
        """Validate and persist changes to an existing object.

        Fields absent from ``data`` keep their current values.

        Raises:
            NotFoundError: If the object does not exist
            ValidationError: If the merged values are invalid; nothing is persisted
        """
        data = self._input(data)
        store = self.context.store
        with store.lock(), restore_on_error(store, self._root_path(self.parent_id)):
            current = self._load_current()
            self.validate(data, current=current)
            self._write()
            store.commit(f"Modified {self.get_verbose_name()} {self.identity}")

        logger.info(f"Updated {type(self).__name__} {self.identity}")
        self._derive()
        self._after_write()
        return self

    def _check_references(self) -> None:
        referrers = []
        for model_class in registered_models():
            for field in model_class._fields.values():
                if field.references is None:
                    continue
                target_name, target_field = field.references
                if target_name != type(self).__name__:
                    continue

                key = self._values.get(target_field)
                if key in (None, "", []):
                    continue

                for other in model_class.read_all(self.context):
                    value = getattr(other, field.name)
                    if (isinstance(value, list) and key in value) or value == key:
                        referrers.append(
                            {"model": model_class.__name__, "identity": other.identity, "field": field.name}
                        )

        if referrers:
            raise ConflictError(
                f"{self.get_verbose_name()} {self.identity} is in use by {len(referrers)} object(s)",
                details={"referenced_by": referrers},
            )

    def delete(self, spawn: bool = True) -> "Model":
        """Remove the object after checking nothing depends on it.

        Raises:
            NotFoundError: If the object does not exist
            ConflictError: If other persisted objects reference it
        """
        store = self.context.store
        with store.lock(), restore_on_error(store, self._root_path(self.parent_id)):
            self._load_current()
            self._check_references()
            self.check_delete()
            store.delete(self.object_path(self.id, self.parent_id))
            store.commit(f"Deleted {self.get_verbose_name()} {self.identity}")

        logger.info(f"Deleted {type(self).__name__} {self.identity}")
        self._after_write(deleted=True, spawn=spawn)
        return self

    # ------------------------------------------------------------------
    # Reads and bulk operations
    # ------------------------------------------------------------------

    @classmethod
    def read(cls, context: "ModelContext", id: Optional[int] = None, parent_id: Optional[int] = None) -> "Model":
        """Load one object.

        Raises:
            NotFoundError: If a collection object does not exist
        """
        cls._check_parent(context, parent_id)
        if cls.many and id is None:
            raise InternalError(f"Reading {cls.__name__} requires an id", code="MODEL_MISSING_ID")

        record = context.store.get(cls.object_path(id, parent_id))
        if record is None and cls.many:
            raise NotFoundError(
                f"{cls.get_verbose_name()} {id} does not exist",
                details={"id": id, "parent_id": parent_id},
            )
        return cls.from_internal(context, record or {}, id=id, parent_id=parent_id)

    @classmethod
    def read_all(cls, context: "ModelContext", parent_id: Optional[int] = None) -> "ModelSet":
        """Load every object, in store order.

        For nested schemas a None ``parent_id`` reads every parent scope.
        """
        from .modelset import ModelSet

        if not cls.many:
            return ModelSet([cls.read(context, parent_id=parent_id)], model_class=cls)

        if cls.is_nested() and parent_id is None:
            scopes = cls.parent_scopes(context)
        else:
            cls._check_parent(context, parent_id)
            scopes = [parent_id]

        models = []
        for scope in scopes:
            for object_id, record in cls.load_records(context, scope).items():
                models.append(cls.from_internal(context, record, id=object_id, parent_id=scope))
        return ModelSet(models, model_class=cls)

    @classmethod
    def query(
        cls,
        context: "ModelContext",
        filters: Optional[Mapping[str, Any]] = None,
        *,
        parent_id: Optional[int] = None,
        limit: int = 0,
        offset: int = 0,
        sort_by: Optional[Union[str, list[str]]] = None,
        sort_order: str = "ascending",
        sort_flags: str = "regular",
    ) -> "ModelSet":
        """Filter, sort and paginate the schema's objects."""
        return cls.read_all(context, parent_id=parent_id).query(
            filters,
            limit=limit,
            offset=offset,
            sort_by=sort_by,
            sort_order=sort_order,
            sort_flags=sort_flags,
        )

    @classmethod
    def delete_many(
        cls,
        context: "ModelContext",
        filters: Mapping[str, Any],
        parent_id: Optional[int] = None,
    ) -> "ModelSet":
        """Delete every object matching ``filters``.

        Raises:
            ValidationError: If no filters are given
        """
        if not filters:
            raise ValidationError(
                f"Deleting many {cls.get_verbose_name()} objects requires at least one filter",
                code="QUERY_FILTERS_REQUIRED",
            )
        return cls.query(context, filters, parent_id=parent_id).delete()

    @classmethod
    def delete_all(cls, context: "ModelContext", parent_id: Optional[int] = None) -> "ModelSet":
        """Delete every object in the scope."""
        return cls.read_all(context, parent_id=parent_id).delete()

    @classmethod
    def replace_all(
        cls,
        context: "ModelContext",
        data: list[Mapping[str, Any]],
        parent_id: Optional[int] = None,
    ) -> "ModelSet":
        """Replace the whole collection with newly created objects.

        New objects are validated against each other, not against the objects
        they replace. Replaced objects are removed without the delete guard.
        Either every new object is persisted or none is.
        """
        from .modelset import ModelSet

        if not cls.many:
            raise InternalError(f"{cls.__name__} is not a collection", code="MODEL_MISCONFIGURED")
        if not isinstance(data, list):
            raise ValidationError("Replacement data must be a list of objects", code="MODEL_INVALID_INPUT")

        store = context.store
        with store.lock():
            cls._check_parent(context, parent_id)
            old = cls.read_all(context, parent_id=parent_id)

            created = []
            with restore_on_error(store, cls._root_path(parent_id)):
                store.set(cls.collection_path(parent_id), {})
                for item in data:
                    model = cls(context, parent_id=parent_id)
                    model._create_locked(item)
                    created.append(model)
                store.commit(f"Replaced all {cls.get_verbose_name()} objects")

        logger.info(f"Replaced {len(old)} {cls.__name__} object(s) with {len(created)}")
        for model in old:
            model._after_write(deleted=True, spawn=False)
        for model in created:
            model._derive()
            model._after_write(spawn=False)
        if not cls.always_apply:
            cls.get_dispatcher(context).spawn()
        return ModelSet(created, model_class=cls)
