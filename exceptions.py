"""
Application exception hierarchy.

Every error raised by the store adapter or the repositories derives from
BaseAppException and carries:
- type:        error category (validation_error / not_found / store_unavailable / ...)
- code:        specific error code (MISSING_REQUIRED_FIELDS / LOAD_FAILED / ...)
- message:     user-readable text
- detail:      optional extra data (dict / list / None)
- http_status: status used when the error reaches the HTTP layer

Routes only raise; the handlers registered in main.py render the response.
"""


class BaseAppException(Exception):
    """Base class for all application errors."""

    type = "error"
    code = "UNKNOWN_ERROR"
    http_status = 500

    def __init__(self, message, *, code=None, detail=None, http_status=None):
        super().__init__(message)
        self.message = message
        self.detail = detail
        # Per-instance overrides shadow the class defaults.
        if code:
            self.code = code
        if http_status:
            self.http_status = http_status

    def to_response(self):
        """Body of the JSON error envelope returned by the API."""
        body = {"error": self.message, "type": self.type, "code": self.code}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class ValidationError(BaseAppException):
    """A required field is missing or invalid. The operation is not attempted."""

    type = "validation_error"
    code = "VALIDATION_ERROR"
    http_status = 400


class NotFound(BaseAppException):
    """Update against an id that does not exist."""

    type = "not_found"
    code = "NOT_FOUND"
    http_status = 404


class Cancelled(BaseAppException):
    """
    The calling context went away before the operation completed.

    Never shown to the user. Reads turn it into an empty/absent result.
    """

    type = "cancelled"
    code = "REQUEST_CANCELLED"
    http_status = 499


class StoreUnavailable(BaseAppException):
    """The document store could not be reached or did not answer."""

    type = "store_unavailable"
    code = "STORE_UNAVAILABLE"
    http_status = 503


class LoadFailed(StoreUnavailable):
    """A list load did not finish within its time limit."""

    code = "LOAD_FAILED"


class PermissionDenied(BaseAppException):
    """The document store rejected the operation."""

    type = "permission_denied"
    code = "PERMISSION_DENIED"
    http_status = 403
