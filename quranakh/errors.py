"""Typed errors raised by the lifecycle and assessment services.

Every error is an ``HTTPException`` carrying a stable ``error_code`` so route
handlers can let them propagate unchanged; ``main`` renders them as
``{"success": false, "error": ..., "code": ..., "details": ...}``.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class EngineError(HTTPException):
    """Base class for lifecycle/assessment errors."""

    status_code_default: int = status.HTTP_400_BAD_REQUEST
    error_code_default: str = "ENGINE_ERROR"

    def __init__(
        self,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(
            status_code=self.status_code_default, detail=message, headers=headers
        )
        self.error_code = self.error_code_default
        self.extra = extra or {}

    @property
    def message(self) -> str:
        return str(self.detail)


class IllegalTransition(EngineError):
    """The requested status is not reachable from the current status."""

    status_code_default = status.HTTP_400_BAD_REQUEST
    error_code_default = "INVALID_TRANSITION"


class Forbidden(EngineError):
    status_code_default = status.HTTP_403_FORBIDDEN
    error_code_default = "FORBIDDEN"


class NotFound(EngineError):
    """Missing entity, or one the actor is not allowed to see."""

    status_code_default = status.HTTP_404_NOT_FOUND
    error_code_default = "NOT_FOUND"


class InvalidState(EngineError):
    """Operation attempted outside its required precondition."""

    status_code_default = status.HTTP_409_CONFLICT
    error_code_default = "INVALID_STATE"


class ValidationError(EngineError):
    status_code_default = 422
    error_code_default = "VALIDATION_ERROR"


class OutOfRange(EngineError):
    """Grade score outside ``[0, max_score]``."""

    status_code_default = 422
    error_code_default = "INVALID_SCORE"


class Conflict(EngineError):
    status_code_default = status.HTTP_409_CONFLICT
    error_code_default = "CONFLICT"


class ConcurrencyConflict(EngineError):
    """An optimistic write lost the race; the caller should re-read and retry."""

    status_code_default = status.HTTP_409_CONFLICT
    error_code_default = "CONCURRENCY_CONFLICT"


class Unauthorized(EngineError):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    error_code_default = "UNAUTHORIZED"

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})
