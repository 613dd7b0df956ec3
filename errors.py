"""
Error taxonomy for the storefront.

Services raise these; ``main.py`` turns them into ``{"detail": ...}``
responses with the status code carried by the class.
"""


class StoreError(Exception):
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        self.message = message
        super().__init__(message)


class ValidationError(StoreError):
    """Missing or malformed input."""

    status_code = 400


class AuthError(StoreError):
    """Bad credentials or no session."""

    status_code = 401

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class PermissionDenied(StoreError):
    status_code = 403

    def __init__(self, message: str = "Admin only"):
        super().__init__(message)


class NotFoundError(StoreError):
    status_code = 404


class ConflictError(StoreError):
    """A unique field (email, username, order id) is already taken."""

    status_code = 409


class DependencyError(StoreError):
    """The blob store (or another required backend) failed."""

    status_code = 502


class ServiceUnavailable(StoreError):
    status_code = 503

    def __init__(self, message: str = "Database not configured"):
        super().__init__(message)


def schema_error(exc) -> ValidationError:
    """Turn a pydantic ValidationError into a 400 naming the offending fields."""
    parts = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{field}: {err.get('msg')}" if field else err.get("msg", "invalid"))
    return ValidationError("; ".join(parts) or "Invalid input")
