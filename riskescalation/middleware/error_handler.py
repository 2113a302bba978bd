"""
Global Error Handler Middleware.

Catches exceptions that escaped the EscalationError handlers and returns
a generic JSON body. Every error gets a unique error_id for correlation
with server logs; no stack traces or driver errors reach the client.
"""

import uuid

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from riskescalation.config import settings
from riskescalation.exceptions import ErrorCode, EscalationError

logger = structlog.get_logger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Outermost middleware — catches everything."""

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            error_id = str(uuid.uuid4())

            logger.exception(
                "unhandled_exception",
                error_id=error_id,
                path=request.url.path,
                method=request.method,
                error=str(exc),
            )

            error = EscalationError(
                message="An internal error occurred. Please try again later.",
                code=ErrorCode.INTERNAL_ERROR,
                status_code=500,
                details={"debug_hint": type(exc).__name__} if settings.debug else None,
            )
            request_id = getattr(request.state, "request_id", None)
            return JSONResponse(
                status_code=500,
                content=error.to_response(request_id, error_id).model_dump(),
            )
