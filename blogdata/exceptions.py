"""
Error taxonomy for the blog data layer.

Every error raised out of a service function is a ``BlogError`` carrying a
typed ``kind`` so callers can branch on the category without parsing
messages::

    BlogError (base)
    ├── ValidationError         VALIDATION        → 400
    ├── NotFoundError           NOT_FOUND         → 404
    │   ├── UserNotFoundError
    │   ├── AuthorNotFoundError
    │   └── PostNotFoundError
    ├── DuplicateEmailError     DUPLICATE_EMAIL   → 409
    └── OperationFailedError    OPERATION_FAILED  → 500
        ├── FetchFailedError
        └── CreateFailedError

``message`` is safe to hand to API consumers.  ``context`` holds debug
detail that is logged server-side but never returned.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    DUPLICATE_EMAIL = "duplicate_email"
    OPERATION_FAILED = "operation_failed"


class BlogError(Exception):
    """Base class for every error the service layer raises."""

    kind: ErrorKind = ErrorKind.OPERATION_FAILED
    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(BlogError):
    """A required input is missing or malformed.  Raised before any query."""

    kind = ErrorKind.VALIDATION
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(BlogError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404
    resource = "resource"

    def __init__(
        self,
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = self.resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=f"{self.resource.capitalize()} not found", context=ctx)
        self.resource_id = resource_id


class UserNotFoundError(NotFoundError):
    resource = "user"


class AuthorNotFoundError(NotFoundError):
    """The ``author_id`` referenced by a write does not exist."""

    resource = "author"


class PostNotFoundError(NotFoundError):
    """The ``post_id`` referenced by a comment does not exist."""

    resource = "post"


class DuplicateEmailError(BlogError):
    kind = ErrorKind.DUPLICATE_EMAIL
    status_code = 409

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="A user with this email already exists", context=context
        )


class OperationFailedError(BlogError):
    """
    Catch-all for storage failures.

    The underlying exception is chained as ``__cause__`` for logging; the
    message never includes its text.
    """

    kind = ErrorKind.OPERATION_FAILED
    status_code = 500


class FetchFailedError(OperationFailedError):
    def __init__(self, resource: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message=f"Failed to fetch {resource}", context=context)


class CreateFailedError(OperationFailedError):
    def __init__(self, resource: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message=f"Failed to create {resource}", context=context)
