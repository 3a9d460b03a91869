"""Exception hierarchy shared by the store, the operations and the HTTP layer."""

from __future__ import annotations

from typing import Dict


class TaskboardError(Exception):
    """Base class for failures that map onto an error response."""

    code: str = "error"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, str]:
        return {"error": self.code, "detail": self.message}


class NotFoundError(TaskboardError):
    """A role, user or task position does not exist."""

    code = "not_found"
    status_code = 404


class ForbiddenError(TaskboardError):
    """The actor's rank does not allow the requested operation."""

    code = "forbidden"
    status_code = 403


class UnauthorizedError(TaskboardError):
    """Credentials were rejected or no valid session was presented."""

    code = "unauthorized"
    status_code = 401


class ConflictError(TaskboardError):
    code = "conflict"
    status_code = 409


class InvalidRequestError(TaskboardError):
    code = "invalid"
    status_code = 400


class InternalError(TaskboardError):
    code = "internal"
    status_code = 500


__all__ = [
    "TaskboardError",
    "NotFoundError",
    "ForbiddenError",
    "UnauthorizedError",
    "ConflictError",
    "InvalidRequestError",
    "InternalError",
]
