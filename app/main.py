import logging
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Routers
from .routers.properties import router as properties_router

# Core modules
from .core.config import settings
from .core.errors import AppError, StorageError
from .core.logging import configure_logging, CorrelationIdMiddleware, RequestLoggerMiddleware
from .core.metrics import PromMiddleware, metrics_endpoint
from .data.base import PropertyRepository
from .data.property_repository import property_repository
from .services.property_service import PropertyService

logger = logging.getLogger("app")

def _request_id(request: Request) -> str:
    # Starlette's outermost error handler can run after the correlation middleware unwound
    return (
        getattr(request.state, "request_id", None)
        or request.headers.get("x-request-id")
        or "unknown"
    )

def error_body(request: Request, message: str, details=None) -> dict:
    body = {
        "status": "error",
        "message": message,
        "requestId": _request_id(request),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details is not None:
        body["details"] = details
    return body

async def app_error_handler(request: Request, exc: AppError):
    if isinstance(exc, StorageError):
        logger.error(
            "Storage failure: %s", exc.message,
            exc_info=exc.cause, extra={"request_id": _request_id(request)},
        )
    body = error_body(request, exc.message, getattr(exc, "details", None))
    if settings.ENV == "development":
        body["stack"] = "".join(traceback.format_exception(exc, chain=False))
    return JSONResponse(status_code=exc.status_code, content=body)

async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Body/query schema failures share the envelope of service-level ValidationError
    return JSONResponse(
        status_code=400,
        content=error_body(request, "Validation failed", jsonable_encoder(exc.errors())),
    )

async def unhandled_error_handler(request: Request, exc: Exception):
    # Full detail goes to the log, never to the client
    logger.error(
        "Unexpected error on %s %s", request.method, request.url.path,
        exc_info=exc, extra={"request_id": _request_id(request)},
    )
    body = error_body(request, "Internal server error")
    return JSONResponse(status_code=500, content=body, headers={"X-Request-Id": body["requestId"]})

@asynccontextmanager
async def lifespan(app: FastAPI):
    repo = app.state.property_service.repo
    ping = getattr(repo, "ping", None)
    if ping is not None:
        try:
            await ping()
        except StorageError as exc:
            logger.error("Failed to connect to backing store: %s", exc.cause)
            raise
    logger.info("Repository: %s", type(repo).__name__)
    yield

def create_app(repository: PropertyRepository | None = None) -> FastAPI:
    """
    App factory so tests and ASGI servers can instantiate cleanly.
    Pass a repository to override the one chosen from settings.
    """
    configure_logging(settings.LOG_LEVEL)  # Set up JSON logs + request-id filter

    app = FastAPI(
        title="Property Listing API",
        version="1.0.0",
        description="API for adding and searching properties for sale with suburb-based price comparisons",
        docs_url="/api-docs",
        lifespan=lifespan,
    )
    app.state.property_service = PropertyService(repository or property_repository())

    # CORS
    allow_origins = [o.strip() for o in settings.ALLOW_ORIGINS.split(",")] if settings.ALLOW_ORIGINS else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )

    # Observability middlewares; the last one added runs first
    app.add_middleware(RequestLoggerMiddleware)
    if settings.PROMETHEUS_ENABLED:
        app.add_middleware(PromMiddleware)       # Records req/latency metrics
    app.add_middleware(CorrelationIdMiddleware)  # Adds/propagates X-Request-Id

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Meta routes
    @app.get("/health", tags=["Health"])
    def health():
        return {"ok": True}

    if settings.PROMETHEUS_ENABLED:
        # Standard Prometheus scrape endpoint
        app.add_route("/metrics", metrics_endpoint, methods=["GET"])

    # Business routes
    app.include_router(properties_router, tags=["Properties"])

    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
