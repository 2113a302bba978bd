"""HTTP middleware: request context binding and last-resort error handling."""

from riskescalation.middleware.error_handler import ErrorHandlerMiddleware
from riskescalation.middleware.request_context import RequestContextMiddleware

__all__ = ["ErrorHandlerMiddleware", "RequestContextMiddleware"]
