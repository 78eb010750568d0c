class CatalogError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code = 500
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CatalogError):
    status_code = 400
    kind = "invalid-field"

    def __init__(self, field: str, message: str | None = None):
        super().__init__(message or f"Invalid field: {field}")
        self.field = field


class InvalidIdentifierError(CatalogError):
    status_code = 400
    kind = "invalid-identifier"


class NotFoundError(CatalogError):
    status_code = 404
    kind = "not-found"


class ConflictError(CatalogError):
    status_code = 409
    kind = "duplicate"


class IndexOutOfRangeError(CatalogError):
    status_code = 400
    kind = "index-out-of-range"


class InvalidCredentialsError(CatalogError):
    status_code = 401
    kind = "invalid-credentials"


class UnexpectedStorageError(CatalogError):
    status_code = 500
    kind = "storage-error"
