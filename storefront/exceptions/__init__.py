"""Custom exceptions for the storefront application."""


class StorefrontError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, reason='internal_error', payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.reason = reason
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['reason'] = self.reason
        rv['status'] = 'error'
        return rv


class ValidationError(StorefrontError):
    """Raised for malformed input: bad ids, bad media types, oversized payloads."""
    def __init__(self, message, reason='invalid_payload', payload=None):
        super().__init__(message, 400, reason, payload)


class NotFoundError(StorefrontError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", reason='not_found', payload=None):
        super().__init__(message, 404, reason, payload)


class AuthenticationError(StorefrontError):
    """Raised when the caller is not signed in or the identity token is invalid."""
    def __init__(self, message="Authentication required", reason='unauthenticated', status_code=401):
        super().__init__(message, status_code, reason)


class UnauthorizedError(StorefrontError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access", reason='forbidden'):
        super().__init__(message, 403, reason)


class StorageError(StorefrontError):
    """Raised when the object store rejects or fails an operation."""
    def __init__(self, message="Storage backend failure", reason='storage_error'):
        super().__init__(message, 500, reason)


class ConcurrentUpdateError(StorefrontError):
    """Raised when an optimistic-concurrency update keeps losing the race."""
    def __init__(self, message="The record was modified concurrently, try again"):
        super().__init__(message, 409, 'concurrent_update')
