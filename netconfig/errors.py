"""Error taxonomy for the configuration engine.

Every error raised by the engine carries a stable machine-readable ``code``,
a human-readable message, structured details and the HTTP status the
transport layer should answer with.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

# Error code catalog: default status and message per code
ERROR_CODES = {
    # Field validation
    "FIELD_REQUIRED": {"status": 400, "message": "Field is required"},
    "FIELD_UNKNOWN": {"status": 400, "message": "Field is not defined on this model"},
    "FIELD_NULL_NOT_ALLOWED": {"status": 400, "message": "Field cannot be null"},
    "FIELD_INVALID_TYPE": {"status": 400, "message": "Field has an invalid type"},
    "FIELD_EMPTY_NOT_ALLOWED": {"status": 400, "message": "Field cannot be empty"},
    "FIELD_INVALID_CHOICE": {"status": 400, "message": "Field value is not a valid choice"},
    "FIELD_VALUE_TOO_SMALL": {"status": 400, "message": "Field value is below minimum"},
    "FIELD_VALUE_TOO_LARGE": {"status": 400, "message": "Field value is above maximum"},
    "FIELD_LENGTH_TOO_SHORT": {"status": 400, "message": "Field value is too short"},
    "FIELD_LENGTH_TOO_LONG": {"status": 400, "message": "Field value is too long"},
    "FIELD_TOO_FEW_ITEMS": {"status": 400, "message": "Field has too few items"},
    "FIELD_TOO_MANY_ITEMS": {"status": 400, "message": "Field has too many items"},
    "FIELD_MUST_BE_UNIQUE": {"status": 400, "message": "Field value must be unique"},
    "FIELD_REFERENCE_NOT_FOUND": {"status": 400, "message": "Referenced object does not exist"},
    "FIELD_INVALID_FORMAT": {"status": 400, "message": "Field value has an invalid format"},
    "MODEL_INVALID": {"status": 400, "message": "Object is invalid"},
    "MODEL_INVALID_INPUT": {"status": 400, "message": "Input data must be a mapping"},
    # Query
    "QUERY_INVALID_OPERATOR": {"status": 400, "message": "Unsupported query operator"},
    "QUERY_UNKNOWN_FIELD": {"status": 400, "message": "Query references an unknown field"},
    "QUERY_INVALID_PAGINATION": {"status": 400, "message": "Invalid limit or offset"},
    "QUERY_FILTERS_REQUIRED": {"status": 400, "message": "Bulk deletion requires at least one filter"},
    "SORT_UNKNOWN_FIELD": {"status": 400, "message": "Sort references an unknown field"},
    "SORT_INVALID_ORDER": {"status": 400, "message": "Unsupported sort order"},
    "SORT_INVALID_FLAGS": {"status": 400, "message": "Unsupported sort flags"},
    # Resources
    "MODEL_NOT_FOUND": {"status": 404, "message": "Object not found"},
    "PARENT_NOT_FOUND": {"status": 404, "message": "Parent object not found"},
    "MODEL_IN_USE": {"status": 409, "message": "Object is in use by other objects"},
    # Authorization
    "AUTH_INSUFFICIENT_PRIVILEGES": {"status": 403, "message": "Insufficient privileges"},
    # Programming errors
    "MODELSET_INVALID_MEMBER": {"status": 500, "message": "ModelSet members must be models"},
    "MODELSET_EMPTY": {"status": 500, "message": "ModelSet is empty"},
    "MODELSET_INVALIDATED": {"status": 500, "message": "ModelSet was invalidated by a mutation"},
    "MODEL_MISCONFIGURED": {"status": 500, "message": "Model class is misconfigured"},
    "MODEL_MISSING_ID": {"status": 500, "message": "Operation requires an object id"},
    "STORE_WRITE_FAILED": {"status": 500, "message": "Configuration store write failed"},
}


class ErrorResponse(BaseModel):
    """Serializable error payload handed to the transport layer."""

    error: str = Field(..., description="Error code identifier")
    message: str = Field(..., description="Human-readable error message")
    status: int = Field(..., description="Suggested HTTP status code")
    details: Optional[dict[str, Any]] = Field(
        default=None, description="Additional error details"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow, description="Error timestamp"
    )


class NetConfigError(Exception):
    """Base class of every error raised by the engine."""

    default_code = "MODEL_INVALID"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        """Initialize the error.

        Args:
            message: Human-readable message (defaults to the catalog message)
            code: Error code from ERROR_CODES
            details: Additional structured details
        """
        self.code = code or self.default_code
        if self.code not in ERROR_CODES:
            raise ValueError(f"Unknown error code: {self.code}")

        error_info = ERROR_CODES[self.code]
        self.message = message or error_info["message"]
        self.status_code = error_info["status"]
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Return the error as a plain dictionary."""
        return self.to_response().model_dump(mode="json")

    def to_response(self) -> ErrorResponse:
        """Return the error as an ErrorResponse payload."""
        return ErrorResponse(
            error=self.code,
            message=self.message,
            status=self.status_code,
            details=self.details or None,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(NetConfigError):
    """A field or whole-object constraint was violated by user input."""

    default_code = "MODEL_INVALID"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if field is not None:
            details.setdefault("field", field)
        self.field = field
        self.value = value
        super().__init__(message=message, code=code, details=details)


class ConflictError(NetConfigError):
    """The mutation is blocked by another object depending on the target."""

    default_code = "MODEL_IN_USE"


class ForbiddenError(NetConfigError):
    """The caller lacks the privilege required for the operation."""

    default_code = "AUTH_INSUFFICIENT_PRIVILEGES"


class NotFoundError(NetConfigError):
    """The referenced identity does not exist."""

    default_code = "MODEL_NOT_FOUND"


class InternalError(NetConfigError):
    """Code using the engine violated one of its invariants."""

    default_code = "MODEL_MISCONFIGURED"