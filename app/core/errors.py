"""
Typed errors raised by the service layer.

Route handlers never build error responses themselves; the handler registered
in ``app.main`` turns any GoalKeeperError into ``{"detail": ...}`` JSON with the
error's status code.
"""
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse


class GoalKeeperError(Exception):
    """Base class for every expected failure in the core."""

    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(GoalKeeperError):
    """Entity absent, or not visible to the caller."""

    status_code = 404
    default_detail = "Not found"


class Unauthorized(GoalKeeperError):
    """Caller is authenticated but lacks ownership or share access."""

    status_code = 403
    default_detail = "Not authorized"


class ValidationError(GoalKeeperError):
    status_code = 422
    default_detail = "Invalid input"


class InternalError(GoalKeeperError):
    """Unexpected store failure."""


async def goalkeeper_error_handler(request: Request, exc: GoalKeeperError) -> JSONResponse:
    if exc.status_code >= 500:
        print(f"[ERROR] path={request.url.path} {type(exc).__name__}: {exc.detail}", flush=True)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
