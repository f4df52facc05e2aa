"""
Typed error hierarchy for the stamp backend.

Services raise these instead of bare exceptions; the handler registered in
``linestamp.main`` renders every one of them as::

    {"error": <category>, "message": <text>}

with the HTTP status carried by the class. Anything that is not an
``AppError`` becomes a 500.

    AppError
    ├── BadRequestError            400
    │   ├── InvalidStateError      400
    │   └── InsufficientBalanceError 400
    ├── UnauthorizedError          401
    ├── ForbiddenError             403
    ├── NotFoundError              404
    └── ServiceUnavailableError    503
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class AppError(Exception):
    status_code: int = 500
    category: str = "Internal Server Error"

    def __init__(self, message: str, *, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.category, "message": self.message}


class BadRequestError(AppError):
    status_code = 400
    category = "Bad Request"


class InvalidStateError(BadRequestError):
    """The stamp is not in a status the requested trigger accepts."""

    def __init__(self, status: str, allowed, message: str | None = None):
        allowed = sorted(str(a) for a in allowed)
        super().__init__(
            message or f"Invalid status: {status}. Expected one of: {', '.join(allowed)}",
            detail={"status": status, "allowed": allowed},
        )
        self.status = status


class InsufficientBalanceError(BadRequestError):
    def __init__(self, balance: int, requested: int):
        super().__init__(
            "Insufficient token balance",
            detail={"balance": balance, "requested": requested},
        )


class UnauthorizedError(AppError):
    status_code = 401
    category = "Unauthorized"


class ForbiddenError(AppError):
    status_code = 403
    category = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    category = "Not Found"


class ServiceUnavailableError(AppError):
    status_code = 503
    category = "Service Unavailable"


class InternalError(AppError):
    pass
