"""Error taxonomy shared by the services and the HTTP layer."""

from __future__ import annotations


class ExamForgeError(Exception):
    """Base class for errors reported to callers with a single message."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ExamForgeError):
    """Raised when input has the wrong shape or breaks a domain rule."""

    status_code = 400


class AuthError(ExamForgeError):
    """Raised when the caller identity is missing or invalid."""

    status_code = 401


class NotFoundError(ExamForgeError):
    """Raised for unknown (or foreign) entities and access codes."""

    status_code = 404


class ConflictError(ExamForgeError):
    """Raised when the current state forbids the requested transition."""

    status_code = 409
