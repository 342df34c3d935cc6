from typing import Any, Optional


class CommunityError(Exception):
    """
    Base exception for the community service. Every error is scoped to the
    operation that raised it and leaves prior state intact.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class AuthenticationError(CommunityError):
    """
    Raised on bad credentials or when an operation needs a session and none is active.
    """
    def __init__(self, message: str = "Invalid credentials", details: Optional[Any] = None):
        super().__init__(message, code="AUTHENTICATION_FAILED", status_code=401, details=details)


class AuthorizationError(CommunityError):
    """
    Raised when an email or operation is not permitted for the caller.
    """
    def __init__(self, message: str = "Operation not permitted", details: Optional[Any] = None):
        super().__init__(message, code="NOT_AUTHORIZED", status_code=403, details=details)


class ValidationError(CommunityError):
    """
    Raised when input is rejected client-side, before any network call.
    """
    def __init__(self, message: str = "Validation error", details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=422, details=details)


class NotFound(CommunityError):
    """
    Raised when a lookup matches no row.
    """
    def __init__(self, message: str = "Resource not found", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)


class PersistenceError(CommunityError):
    """
    Raised when a remote read or write against the row store fails.
    """
    def __init__(self, message: str = "Remote write failed", details: Optional[Any] = None):
        super().__init__(message, code="PERSISTENCE_FAILED", status_code=502, details=details)


class UploadError(CommunityError):
    """
    Raised when the object store rejects an asset upload.
    """
    def __init__(self, message: str = "Upload failed", details: Optional[Any] = None):
        super().__init__(message, code="UPLOAD_FAILED", status_code=502, details=details)


class SendError(CommunityError):
    """
    Raised when a message insert fails.
    """
    def __init__(self, message: str = "Message could not be sent", details: Optional[Any] = None):
        super().__init__(message, code="SEND_FAILED", status_code=502, details=details)


class BackendError(Exception):
    """
    Error surfaced by the Supabase adapter, carrying the backend error code.
    `retryable` is set when the service could not be reached at all.
    """
    def __init__(self, message: str, code: Optional[str] = None, retryable: bool = False):
        self.message = message
        self.code = code
        self.retryable = retryable
        super().__init__(message)
