"""Operation categories and the authorization collaborator contract.

The core never decides who may do what. It only names the privilege each
operation on each schema requires, so the transport layer can ask its
authorization collaborator before invoking the core.
"""

import logging
import re
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

from .errors import ForbiddenError

if TYPE_CHECKING:
    from .models.model import Model

logger = logging.getLogger(__name__)

WILDCARD_PRIVILEGE = "*"


class Operation(str, Enum):
    """Privilege categories an operation on a schema falls under."""

    QUERY = "query"
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    REPLACE = "replace"
    DELETE_MANY = "delete-many"
    DELETE_ALL = "delete-all"


def schema_slug(name: str) -> str:
    """Convert a CamelCase schema name to a kebab-case slug."""
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", "-", name).lower()


def privilege_name(model_class: "type[Model]", operation: Operation) -> str:
    """Return the privilege required for ``operation`` on ``model_class``."""
    operation = Operation(operation)
    prefix = model_class.privilege_prefix or f"netconfig-{schema_slug(model_class.__name__)}"
    return f"{prefix}-{operation.value}"


class Authorizer:
    """Authorization collaborator contract."""

    def is_authorized(self, identity: str, privileges: Iterable[str]) -> bool:
        """Return True when ``identity`` holds any of ``privileges``."""
        raise NotImplementedError("Subclasses must implement is_authorized method")


class StaticAuthorizer(Authorizer):
    """Authorizer backed by a fixed identity to privilege-set table."""

    def __init__(self, grants: Optional[dict[str, set[str]]] = None):
        self.grants = grants or {}

    def is_authorized(self, identity: str, privileges: Iterable[str]) -> bool:
        held = self.grants.get(identity, set())
        if WILDCARD_PRIVILEGE in held:
            return True
        return any(privilege in held for privilege in privileges)


def require_privilege(
    authorizer: Authorizer,
    identity: str,
    model_class: "type[Model]",
    operation: Operation,
) -> str:
    """Raise ForbiddenError unless ``identity`` may perform ``operation``.

    Returns:
        The privilege that was checked
    """
    privilege = privilege_name(model_class, operation)
    if not authorizer.is_authorized(identity, [privilege]):
        logger.warning(f"Access denied: {identity} lacks {privilege}")
        raise ForbiddenError(
            f"'{identity}' lacks privilege '{privilege}'",
            details={"privilege": privilege, "operation": Operation(operation).value},
        )
    return privilege
