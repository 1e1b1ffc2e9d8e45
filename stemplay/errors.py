"""Error taxonomy shared by the API and the client.

Every error carries an HTTP status and a machine-readable ``code``. The API
renders them as ``{"error": code, "message": ...}`` and the client maps the
``error`` field back onto the same classes.
"""
from typing import Optional


class StemPlayError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class ValidationError(StemPlayError):
    status_code = 400
    code = "validation_error"


class AuthorizationError(StemPlayError):
    """Missing identity (401) or wrong role / class (403)."""

    status_code = 403
    code = "forbidden"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, status_code)
        if self.status_code == 401:
            self.code = "unauthorized"


class QuotaExceededError(StemPlayError):
    status_code = 403
    code = "quota_exceeded"


class NotFoundError(StemPlayError):
    status_code = 404
    code = "not_found"


class TransientNetworkError(StemPlayError):
    """Request failure not otherwise classified. Raised client-side only."""

    status_code = 503
    code = "transient_network_error"


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (ValidationError, QuotaExceededError, NotFoundError, TransientNetworkError)
}
ERRORS_BY_CODE["forbidden"] = AuthorizationError
ERRORS_BY_CODE["unauthorized"] = AuthorizationError
