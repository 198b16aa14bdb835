"""
Domain errors raised by the catalog services.

Services never build HTTP responses; each error carries the status code the
API layer should answer with.
"""


class CatalogError(Exception):
    """Base class for expected, client-facing failures."""

    status_code = 500
    default_message = "Catalog error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(CatalogError):
    status_code = 404
    default_message = "Not found"


class OwnershipError(CatalogError):
    """Caller is authenticated but does not own the record."""
    status_code = 403
    default_message = "Unauthorized"


class ConflictError(CatalogError):
    status_code = 400
    default_message = "Duplicate record"


class InvalidCredentialsError(CatalogError):
    status_code = 401
    default_message = "Invalid credentials"


class AuthenticationError(CatalogError):
    status_code = 401
    default_message = "Not authenticated"


class TokenConfigurationError(CatalogError):
    """Token signing secret is not configured."""
    status_code = 500
    default_message = "Authentication is not configured"
