"""Value-dependent applicability conditions for fields.

A condition maps other field names to the value, or collection of values, they
must hold for the guarded field to apply. A key prefixed with ``!`` inverts
the clause: the field applies when the referenced value is *not* among the
listed values, which includes the referenced value being absent or null.

    Condition({"type": ["static", "dhcp"], "!mode": "disabled"})
"""

import logging
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

NEGATION_PREFIX = "!"


class Condition:
    """AND-combined set of field value clauses."""

    def __init__(self, spec: Mapping[str, Any]):
        """Initialize the condition.

        Args:
            spec: Mapping of (optionally ``!``-prefixed) field name to accepted value(s)
        """
        self.spec = dict(spec)
        self.clauses: list[tuple[str, bool, tuple[Any, ...]]] = []

        for key, accepted in self.spec.items():
            negated = key.startswith(NEGATION_PREFIX)
            name = key[len(NEGATION_PREFIX) :] if negated else key
            if isinstance(accepted, (list, tuple, set, frozenset)):
                accepted_values = tuple(accepted)
            else:
                accepted_values = (accepted,)
            self.clauses.append((name, negated, accepted_values))

    @property
    def field_names(self) -> list[str]:
        """Names of the fields this condition reads."""
        return [name for name, _, _ in self.clauses]

    def evaluate(self, values: Mapping[str, Any]) -> bool:
        """Return True when every clause holds for ``values``."""
        for name, negated, accepted in self.clauses:
            current = values.get(name)
            matched = any(current == candidate for candidate in accepted)
            if matched == negated:
                return False
        return True

    def __repr__(self) -> str:
        return f"Condition({self.spec!r})"
