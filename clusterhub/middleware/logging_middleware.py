"""
Request logging for the cluster definition API.

Every request gets a short request id that is attached to all log lines
emitted while it is handled, including registry and provisioning logs.
"""

import logging
import time
import uuid
from typing import Callable, List, Optional
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..utils.logging import clear_request_context, get_logger, set_request_context


logger = get_logger(__name__)


def _level_for_status(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class LoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and logs how it was answered."""

    def __init__(self, app: ASGIApp, exclude_paths: Optional[List[str]] = None):
        super().__init__(app)
        self.exclude_paths = set(exclude_paths or ['/health', '/favicon.ico'])

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        route = f"{request.method} {request.url.path}"
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        request_id = uuid.uuid4().hex[:8]
        set_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_ip=self._get_client_ip(request)
        )
        started = time.time()
        try:
            logger.info(f"Incoming request: {route}")
            try:
                response = await call_next(request)
            except Exception as e:
                logger.error(f"Unhandled error while serving {route}",
                             extra={'error_type': type(e).__name__}, exc_info=True)
                raise

            logger.log(
                _level_for_status(response.status_code),
                f"{route} -> {response.status_code}",
                extra={
                    'status_code': response.status_code,
                    'duration_ms': round((time.time() - started) * 1000, 2)
                }
            )
            response.headers['X-Request-ID'] = request_id
            return response
        finally:
            clear_request_context()

    @staticmethod
    def _get_client_ip(request: Request) -> str:
        """First hop of X-Forwarded-For, else the socket peer."""
        forwarded_for = request.headers.get('x-forwarded-for')
        if forwarded_for:
            return forwarded_for.split(',')[0].strip()
        return request.client.host if request.client else 'unknown'
