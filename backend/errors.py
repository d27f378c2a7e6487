"""
Error kinds raised by the service layer.

Every error that reaches the HTTP boundary is rendered as
``{"success": false, "error": <message>}`` with the status code carried by
the exception (see the handlers registered in ``main.py``).
"""

from typing import Optional


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidCredential(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class Conflict(AppError):
    status_code = 409


class PersistenceError(AppError):
    status_code = 500


class ParseError(AppError):
    """A locally stored blob could not be decoded. Never leaves the cart layer."""
    status_code = 400


def error_body(message: str) -> dict:
    return {"success": False, "error": message}
