"""Domain error types raised by services.

Services raise these instead of `HTTPException`; the application maps
them to responses in one place (see `main`). Low level database errors
are translated here so that no raw constraint message reaches a client.
"""

from typing import Optional

from sqlalchemy.exc import IntegrityError

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"


class AppError(Exception):
    """Base class for errors that carry an HTTP status and a short code."""
    status_code = 500
    code = "server_error"
    default_message = "internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInputError(AppError):
    status_code = 400
    code = "invalid_input"
    default_message = "invalid input"


class BadForeignKeyError(AppError):
    status_code = 400
    code = "bad_reference"
    default_message = "referenced record does not exist"


class UnauthorizedError(AppError):
    status_code = 401
    code = "unauthorized"
    default_message = "not authenticated"


class ForbiddenError(AppError):
    status_code = 403
    code = "forbidden"
    default_message = "not allowed"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"
    default_message = "not found"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"
    default_message = "record already exists"


class ConfigurationError(AppError):
    status_code = 500
    code = "configuration_error"
    default_message = "server misconfiguration"


class DeliveryError(AppError):
    status_code = 502
    code = "delivery_failed"
    default_message = "could not deliver message"


class TransactionTimeoutError(AppError):
    status_code = 503
    code = "transaction_timeout"
    default_message = "operation took too long, try again"


def classify_integrity_error(exc: IntegrityError) -> Optional[str]:
    """Return `"unique"`, `"foreign_key"` or None for an `IntegrityError`.

    PostgreSQL drivers expose the SQLSTATE (`sqlstate` on psycopg 3,
    `pgcode` on psycopg2); SQLite only gives a message.
    """
    orig = getattr(exc, "orig", None)
    state = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if state == UNIQUE_VIOLATION:
        return "unique"
    if state == FOREIGN_KEY_VIOLATION:
        return "foreign_key"
    text = str(orig or exc).lower()
    if "unique" in text or "duplicate" in text:
        return "unique"
    if "foreign key" in text:
        return "foreign_key"
    return None


def from_integrity_error(exc: IntegrityError, conflict: str = None, foreign_key: str = None) -> AppError:
    """Map an `IntegrityError` to a `ConflictError` or `BadForeignKeyError`.

    Anything that is neither a uniqueness nor a reference violation becomes
    a generic `AppError` so the handler logs it and hides the detail.
    """
    kind = classify_integrity_error(exc)
    if kind == "unique":
        return ConflictError(conflict)
    if kind == "foreign_key":
        return BadForeignKeyError(foreign_key)
    return AppError()
