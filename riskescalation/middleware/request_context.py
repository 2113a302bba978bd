"""
Request Context Middleware.

Every escalation log line carries who asked and for which school:

- request_id: taken from X-Request-ID when an upstream caller supplies a
  well-formed one, otherwise a fresh UUID4. Echoed back in the response
  and in error bodies.
- trigger: the calling collaborator (X-Trigger-Source, e.g. the nightly
  risk job or the attendance form), "api" when absent.
- school_id: the ``school_id`` query parameter of the notification feed.

Health probes are not logged.
"""

import re
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")
_QUIET_PATHS = frozenset({"/health"})


def _request_id(request: Request) -> str:
    supplied = request.headers.get("X-Request-ID", "")
    return supplied if _SAFE_ID.match(supplied) else str(uuid.uuid4())


def _escalation_context(request: Request) -> dict:
    trigger = request.headers.get("X-Trigger-Source", "")
    context = {"trigger": trigger if _SAFE_ID.match(trigger) else "api"}
    school_id = request.query_params.get("school_id")
    if school_id:
        context["school_id"] = school_id
    return context


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request_id, trigger and school into the structlog context."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = _request_id(request)
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            **_escalation_context(request),
        )

        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms}ms"

        if request.url.path not in _QUIET_PATHS:
            log = logger.warning if response.status_code >= 500 else logger.info
            log("request_completed", status=response.status_code, elapsed_ms=elapsed_ms)
        return response
