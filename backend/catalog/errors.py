from typing import List, Optional


class CatalogError(Exception):
    status = 500
    error_type = "Internal"

    def __init__(self, message: str = ""):
        super().__init__(message or self.error_type)
        self.message = message or self.error_type


class NotFound(CatalogError):
    status = 404
    error_type = "NotFound"


class AlreadyExists(CatalogError):
    status = 409
    error_type = "AlreadyExists"


class InvalidState(CatalogError):
    status = 400
    error_type = "InvalidState"


class UnsupportedVariant(CatalogError):
    status = 400
    error_type = "UnsupportedVariant"


class ValidationFailed(CatalogError):
    status = 400
    error_type = "ValidationFailed"

    def __init__(self, errors: List[str]):
        super().__init__("invalid payload")
        self.errors = errors


class Protected(CatalogError):
    status = 409
    error_type = "Protected"


class UnsupportedMediaType(CatalogError):
    status = 415
    error_type = "UnsupportedMediaType"


class Unauthorized(CatalogError):
    status = 401
    error_type = "Unauthorized"


class Forbidden(CatalogError):
    status = 403
    error_type = "Forbidden"


class Cancelled(CatalogError):
    status = 499
    error_type = "Cancelled"


class Internal(CatalogError):
    status = 500
    error_type = "Internal"


def as_internal(exc: BaseException, message: Optional[str] = None) -> CatalogError:
    if isinstance(exc, CatalogError):
        return exc
    error = Internal(message or f"{exc.__class__.__name__}: {exc}")
    error.__cause__ = exc
    return error
