"""Delivery Core FastAPI application: projects, sprints and their work items."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import get_settings
from ..errors import (
    AuthorizationError,
    ConflictError,
    DeliveryError,
    InvalidTransition,
    NotAssignedError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .routers.containers import projects_router, sprints_router

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("delivery-core")

logger.info("Starting Delivery Core API")

# Create FastAPI app
app = FastAPI(
    title="Delivery Core API",
    description="Department projects and sprints: deliverables, actions, blockers and reviews",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, error: DeliveryError, **extra) -> JSONResponse:
    body = {
        "detail": str(error),
        "error": type(error).__name__,
        "retryable": error.retryable,
    }
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(ValidationError)
def handle_validation_error(request: Request, exc: ValidationError):
    return _error_response(422, exc, details=exc.details)


@app.exception_handler(NotFoundError)
def handle_not_found(request: Request, exc: NotFoundError):
    return _error_response(404, exc)


@app.exception_handler(AuthorizationError)
def handle_authorization_error(request: Request, exc: AuthorizationError):
    extra = {"action": exc.action}
    if isinstance(exc, NotAssignedError):
        extra["workItemId"] = str(exc.work_item_id)
    return _error_response(403, exc, **extra)


@app.exception_handler(ConflictError)
def handle_conflict(request: Request, exc: ConflictError):
    return _error_response(409, exc)


@app.exception_handler(InvalidTransition)
def handle_invalid_transition(request: Request, exc: InvalidTransition):
    def value(status):
        return getattr(status, "value", status)

    return _error_response(
        409,
        exc,
        currentStatus=value(exc.current_status),
        requestedStatus=value(exc.requested_status),
        allowedTransitions=[value(s) for s in exc.allowed_transitions],
    )


@app.exception_handler(StorageError)
def handle_storage_error(request: Request, exc: StorageError):
    logger.error(f"{exc.collaborator} failure on {request.method} {request.url.path}: {exc}")
    return _error_response(503, exc, collaborator=exc.collaborator)


app.include_router(projects_router, prefix="/api/v1/projects")
app.include_router(sprints_router, prefix="/api/v1/sprints")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "Delivery Core API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
