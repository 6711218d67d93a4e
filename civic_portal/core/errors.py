"""Error taxonomy shared by the client core and the repository service.

Every error carries an HTTP status and a stable ``code`` so the service can
render it and the client can map a response back to the same class.
"""


class PortalError(Exception):
    """Base class for every typed failure in the portal."""

    status_code = 500
    code = "PORTAL_ERROR"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(PortalError):
    """Bad input shape or bounds."""

    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(PortalError):
    """Session missing, expired or rejected."""

    status_code = 401
    code = "AUTHENTICATION_REQUIRED"


class AuthorizationError(PortalError):
    """Actor lacks the rights for the operation."""

    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(PortalError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidStateError(PortalError):
    """Operation is not legal in the complaint's current lifecycle state."""

    status_code = 409
    code = "INVALID_STATE"


class InvalidTransitionError(InvalidStateError):
    code = "INVALID_TRANSITION"


class ConflictError(PortalError):
    """Stale version rejected by the repository."""

    status_code = 409
    code = "VERSION_CONFLICT"


class RequestTimeoutError(PortalError, TimeoutError):
    status_code = 504
    code = "TIMEOUT"


class ConnectivityError(PortalError):
    status_code = 503
    code = "UNAVAILABLE"


ERRORS_BY_CODE: dict[str, type[PortalError]] = {
    error_class.code: error_class
    for error_class in (
        ValidationError,
        AuthenticationError,
        AuthorizationError,
        NotFoundError,
        InvalidStateError,
        InvalidTransitionError,
        ConflictError,
        RequestTimeoutError,
        ConnectivityError,
    )
}

ERRORS_BY_STATUS: dict[int, type[PortalError]] = {
    400: ValidationError,
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
    503: ConnectivityError,
    504: RequestTimeoutError,
}


def error_from_response(status_code: int, body: dict | None) -> PortalError:
    """Rebuild a typed error from a service error response."""
    body = body or {}
    detail = body.get("detail")
    if isinstance(detail, list):
        # Request-schema failures come back as a list of field errors.
        message = ", ".join(str(item.get("msg", item)) for item in detail if item)
    else:
        message = str(detail or "")

    error_class = ERRORS_BY_CODE.get(body.get("code") or "")
    if error_class is None:
        error_class = ERRORS_BY_STATUS.get(status_code, PortalError)
    return error_class(message or f"Request failed with status {status_code}")
