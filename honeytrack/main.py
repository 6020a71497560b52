"""
Main FastAPI application entry point.
Honeytrack conversation intelligence and lifecycle engine.
"""

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import time
import uuid
from datetime import datetime, timezone

from config.settings import settings
from honeytrack.api.routes import conversations, health
from honeytrack.core.advisory import create_advisory_consultant
from honeytrack.core.engine import ConversationEngine
from honeytrack.core.logging import setup_logging, get_logger

# Setup logging
setup_logging(settings.log_level)
logger = get_logger(__name__)

# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Conversation intelligence and lifecycle engine for scam engagement",
    docs_url="/docs" if settings.is_development() else None,
    redoc_url="/redoc" if settings.is_development() else None,
    openapi_url="/openapi.json" if settings.is_development() else None,
)


@app.middleware("http")
async def add_request_logging(request: Request, call_next):
    """Log each request with a correlation id."""
    start_time = time.time()
    correlation_id = str(uuid.uuid4())
    request.state.correlation_id = correlation_id

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        "Request completed",
        extra={
            "correlation_id": correlation_id,
            "method": request.method,
            "url": str(request.url),
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
        }
    )

    response.headers["X-Correlation-ID"] = correlation_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Exception handler for validation errors."""
    return JSONResponse(
        status_code=422,
        content={
            "status": "error",
            "message": "Invalid request schema",
            "details": exc.errors()
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Exception handler for HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "status": "error",
            "message": exc.detail
        },
        headers=exc.headers
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    correlation_id = getattr(request.state, "correlation_id", str(uuid.uuid4()))

    logger.error(
        "Unhandled exception occurred",
        extra={
            "correlation_id": correlation_id,
            "method": request.method,
            "url": str(request.url),
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "status": "error",
            "error": "Internal server error",
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat()
        },
        headers={"X-Correlation-ID": correlation_id}
    )


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(conversations.router, prefix="/api", tags=["Conversations"])


@app.on_event("startup")
async def startup_event():
    """Build the engine unless one was provided, then start the tracker sweep."""
    logger.info(
        "Application starting up",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "debug": settings.debug,
        }
    )

    if getattr(app.state, "engine", None) is None:
        consultant = create_advisory_consultant(settings.advisory)
        app.state.engine = ConversationEngine.create(settings, consultant=consultant)

    await app.state.engine.registry.start_sweep_task()


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the sweep and release the advisory client."""
    logger.info("Application shutting down")
    engine = getattr(app.state, "engine", None)
    if engine is None:
        return

    await engine.registry.stop_sweep_task()

    if engine.consultant is not None:
        try:
            await engine.consultant.close()
        except Exception as e:
            logger.error(f"Error closing advisory service: {e}")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "honeytrack.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development(),
        log_level=settings.log_level.lower(),
    )
