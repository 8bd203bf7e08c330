"""
Matrix AI error taxonomy.

Every error carries the HTTP status the API boundary renders it with, so
services can raise them without importing FastAPI.
"""


class MatrixError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MatrixError):
    """Bad input shape or enum value."""
    status_code = 400


class Unauthenticated(MatrixError):
    """Missing, expired or malformed credentials."""
    status_code = 401


class Forbidden(MatrixError):
    """Deactivated account or insufficient role."""
    status_code = 403


class NotFoundError(MatrixError):
    status_code = 404


class ModelLoadError(MatrixError):
    """A model bundle exists but cannot be used."""
    status_code = 500


class ConfigurationError(MatrixError):
    """A required artifact (e.g. the vocabulary) has not been created yet."""
    status_code = 500
