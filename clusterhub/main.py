"""
ClusterHub - Main FastAPI application entry point
"""

import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .api.routes import router
from .models.base import ErrorResponse
from .exceptions import ClusterHubError, ErrorCode
from .middleware.logging_middleware import LoggingMiddleware
from .registry.cluster_registry import GlobalClusterRegistry
from .utils.logging import get_logger, get_request_context, setup_logging

# Initialize structured logging
setup_logging(
    log_level=settings.monitoring.log_level.value,
    structured=settings.monitoring.structured_logging,
    enable_request_tracking=True
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the global registry on startup and stop its background work on shutdown."""
    logger.info(
        "Starting ClusterHub application",
        extra={
            'environment': settings.environment.value,
            'debug': settings.debug,
            'log_level': settings.monitoring.log_level.value
        }
    )
    await GlobalClusterRegistry.get_instance(settings)

    yield

    logger.info("Shutting down ClusterHub application")
    await GlobalClusterRegistry.reset_instance()


app = FastAPI(
    title=settings.api.title,
    description=settings.api.description,
    version=settings.api.version,
    lifespan=lifespan
)

app.add_middleware(LoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/health", tags=["Health"])
async def health():
    """Report whether the definition store is usable."""
    registry = await GlobalClusterRegistry.get_instance(settings)
    store_health = await registry.store.health_check()
    return {
        "status": store_health["status"],
        "version": settings.api.version,
        "store": store_health
    }


# Global exception handlers

_STATUS_BY_ERROR_CODE = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFIGURATION_NOT_FOUND: 404,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.TIMEOUT: 504,
}


def _error_response(status_code: int, error: str, message: str, details: dict) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        message=message,
        details=details,
        request_id=get_request_context().get('request_id') or str(uuid.uuid4())[:8]
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode='json'))


@app.exception_handler(ClusterHubError)
async def clusterhub_exception_handler(request: Request, exc: ClusterHubError):
    """Translate registry errors into an ``ErrorResponse``."""
    status_code = _STATUS_BY_ERROR_CODE.get(exc.error_code, 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc.cause)
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc}")

    payload = exc.to_dict()
    return _error_response(status_code, payload["error"], payload["message"], payload["details"])


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed cluster documents field by field."""
    field_errors = {
        ".".join(str(part) for part in error["loc"]): error["msg"]
        for error in exc.errors()
    }
    logger.warning(f"Invalid request body for {request.url.path}", extra={'field_errors': field_errors})
    return _error_response(
        422, ErrorCode.VALIDATION_ERROR.value, "Request validation failed", {"field_errors": field_errors}
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP {exc.status_code} for {request.url.path}: {exc.detail}")
    error = {
        400: ErrorCode.VALIDATION_ERROR.value,
        404: ErrorCode.NOT_FOUND.value,
        405: "METHOD_NOT_ALLOWED",
    }.get(exc.status_code, f"HTTP_{exc.status_code}")
    return _error_response(
        exc.status_code, error, str(exc.detail or f"HTTP {exc.status_code}"), {"status_code": exc.status_code}
    )


def run() -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    uvicorn.run(
        "clusterhub.main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.reload
    )


if __name__ == "__main__":
    run()
