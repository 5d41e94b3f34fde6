"""
NodeBase Backend: Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for each error scenario.
How:   Each exception carries a human-readable message, an optional context
       dict (logged, never returned), an RPC error `code` and an HTTP
       `status_code`. The RPC bridge uses `code`/`status_code` to build its
       error envelope; REST routes go through the global handlers in main.py.
Who:   Raised by services, procedures, the query cache and auth guards.

Exception Hierarchy:
    NodeBaseError (base)                    → 500 INTERNAL_SERVER_ERROR
    ├── ValidationError                     → 400 BAD_REQUEST
    ├── ProcedureNotFound                   → 404 NOT_FOUND
    ├── MethodNotSupported                  → 405 METHOD_NOT_SUPPORTED
    ├── ProcedureTimeout                    → 504 TIMEOUT
    ├── StoreError                          → 500 INTERNAL_SERVER_ERROR
    ├── RemoteProcedureError                → status/code from the envelope
    └── GuardRedirect                       → 303 redirect (never JSON)
        ├── AuthRequired                    → /login
        └── AlreadyAuthenticated            → /
"""

from typing import Any, Dict, Optional


class NodeBaseError(Exception):
    """
    Base exception for all NodeBase application errors.

    Attributes:
        message:  User-facing error description (safe to return in responses)
        context:  Additional debug info (logged but NOT returned to client)
    """

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(NodeBaseError):
    """
    Raised when client input fails validation.

    When:    Malformed JSON, procedure input rejected by its pydantic type,
             invalid form fields on signup.
    HTTP:    400 Bad Request

    `code` defaults to BAD_REQUEST; unparsable payloads use PARSE_ERROR.
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        code: str = "BAD_REQUEST",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field
        self.code = code


class ProcedureNotFound(NodeBaseError):
    """
    Raised when a request names a procedure the registry does not contain.

    HTTP:    404 Not Found (a client error, never a 500)
    """

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, name: str, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["procedure"] = name
        super().__init__(message=f'No procedure found on path "{name}"', context=ctx)
        self.name = name


class MethodNotSupported(NodeBaseError):
    """Raised when a mutation is called over GET."""

    code = "METHOD_NOT_SUPPORTED"
    status_code = 405

    def __init__(self, name: str, method: str):
        super().__init__(
            message=f'Unsupported {method} request to mutation "{name}"',
            context={"procedure": name, "method": method},
        )


class ProcedureTimeout(NodeBaseError):
    """
    Raised when a procedure does not finish within `rpc_timeout_seconds`.

    HTTP:    504 Gateway Timeout
    """

    code = "TIMEOUT"
    status_code = 504

    def __init__(self, name: str, timeout: float):
        super().__init__(
            message=f'Procedure "{name}" timed out after {timeout:g}s',
            context={"procedure": name, "timeout": timeout},
        )
        self.timeout = timeout


class StoreError(NodeBaseError):
    """
    Raised when the database is unreachable or a query fails.

    HTTP:    500 Internal Server Error

    The message is generic. Driver details (SQL, constraint names) are kept
    in `context` and logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RemoteProcedureError(NodeBaseError):
    """
    Raised by the RPC client when the bridge answers with an error envelope.

    Attributes:
        code:         RPC error code from the envelope (e.g. NOT_FOUND)
        status_code:  HTTP status of the response (or of the batch item)
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
        self.code = code
        self.status_code = status_code


class GuardRedirect(NodeBaseError):
    """
    Base for route-guard failures. Rendered as a 303 redirect to `location`.
    """

    status_code = 303
    location = "/"

    def __init__(self, message: str, location: Optional[str] = None):
        super().__init__(message=message)
        if location is not None:
            self.location = location


class AuthRequired(GuardRedirect):
    """The route needs a signed-in user and the session has none."""

    code = "UNAUTHORIZED"
    location = "/login"

    def __init__(self, location: Optional[str] = None):
        super().__init__("Sign in to continue", location=location)


class AlreadyAuthenticated(GuardRedirect):
    """The route is for anonymous visitors and the session has a user."""

    code = "ALREADY_AUTHENTICATED"
    location = "/"

    def __init__(self, location: Optional[str] = None):
        super().__init__("Already signed in", location=location)
