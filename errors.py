"""
Error taxonomy for the API.

Every error is an HTTPException so route handlers can simply raise it; the
exception handlers in main.py render all of them into the
``{"success": false, "message": ...}`` envelope.
"""

from fastapi import HTTPException


class ApiError(HTTPException):
    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: str = None):
        super().__init__(status_code=self.status_code, detail=message or self.default_message)

    @property
    def message(self) -> str:
        return self.detail


class ValidationError(ApiError):
    status_code = 400
    default_message = "Validation error"


class Unauthorized(ApiError):
    status_code = 401
    default_message = "Not authorized"


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class Conflict(ApiError):
    status_code = 409
    default_message = "Duplicate value error"


class RateLimited(ApiError):
    status_code = 429
    default_message = "Too many requests, please try again later"


class ServerError(ApiError):
    status_code = 500
