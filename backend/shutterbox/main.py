"""
ShutterBox Backend — FastAPI Application Factory
==================================================

What:  Builds the FastAPI application: logging, middleware, exception
       handlers and routers.
Who:   uvicorn (`uvicorn shutterbox.main:app`) and the test client.

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Middleware:  Rate Limit → Request ID → Logging → GZip → CORS │
    │                                                              │
    │  Routes:  /signup /login /avatar   /users/...   /images/...  │
    │           /files/{location}/{shortcode}         /health      │
    │                                                              │
    │  Exception Handlers:                                         │
    │    Validation→400  Unauthorized→401  NotFound→404            │
    │    Conflict/IntegrityError→409  RateLimit→429                │
    │    Database/SQLAlchemy/FileStorage→500  Vision/Circuit→503   │
    │    Serialization→523                                         │
    └──────────────────────────────────────────────────────────────┘

Every error body has the same shape:
    {"error": code, "message": text, "details": {...}?, "request_id": id}
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Dict, NamedTuple, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from shutterbox import __version__
from shutterbox.config import settings
from shutterbox.database import dispose_engine
from shutterbox.exceptions import (
    CircuitBreakerOpenError,
    ConflictError,
    DatabaseError,
    FileStorageError,
    NotFoundError,
    RateLimitExceededError,
    SerializationError,
    ShutterBoxError,
    UnauthorizedError,
    ValidationError,
    VisionServiceError,
)
from shutterbox.middleware.logging import RequestLoggingMiddleware
from shutterbox.middleware.rate_limit import RateLimitMiddleware
from shutterbox.middleware.request_id import (
    RequestIDLogFilter,
    RequestIDMiddleware,
    request_id_var,
)
from shutterbox.responses import ShutterBoxJSONResponse
from shutterbox.routes import auth, files, health, images, users

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s"
NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "PIL")


def setup_logging() -> None:
    """
    Root logger to stdout, every line tagged with the request id:

        2024-01-15T12:00:00 [INFO] shutterbox.services.image_store [a1b2c3d4] ...
    """
    stdout = logging.StreamHandler(sys.stdout)
    stdout.addFilter(RequestIDLogFilter())
    logging.basicConfig(
        level=settings.log_level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[stdout],
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Startup / shutdown
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("ShutterBox %s booting", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving /health so the problem is visible from outside
        logger.error("%s", e)

    storage_root = Path(settings.storage_root).resolve()
    storage_root.mkdir(parents=True, exist_ok=True)
    logger.info(
        "Photos under %s, served from %s; vision %s",
        storage_root,
        settings.content_base_url,
        "on" if settings.vision_enabled else "off",
    )
    logger.info("Listening on %s:%d", settings.backend_host, settings.backend_port)

    yield

    await dispose_engine()
    logger.info("ShutterBox stopped; database pool released")


# ══════════════════════════════════════════════════════════════════════════
# Error responses
# ══════════════════════════════════════════════════════════════════════════

INTERNAL_MESSAGE = "An internal error occurred. Please try again later."


class ErrorRoute(NamedTuple):
    status: int
    code: str
    level: int = logging.ERROR
    show_context: bool = False
    # Replaces exc.message in the body when set
    public_message: Optional[str] = None


# Looked up along the exception's MRO; the nearest entry wins
ERROR_ROUTES: Dict[type, ErrorRoute] = {
    ValidationError: ErrorRoute(400, "validation_error", logging.WARNING, show_context=True),
    UnauthorizedError: ErrorRoute(401, "unauthorized", logging.INFO),
    NotFoundError: ErrorRoute(404, "not_found", logging.INFO),
    ConflictError: ErrorRoute(409, "conflict", logging.INFO, show_context=True),
    RateLimitExceededError: ErrorRoute(429, "rate_limit_exceeded", logging.WARNING, show_context=True),
    CircuitBreakerOpenError: ErrorRoute(503, "service_unavailable", logging.WARNING, show_context=True),
    VisionServiceError: ErrorRoute(503, "vision_service_error"),
    SerializationError: ErrorRoute(523, "serialization_error"),
    DatabaseError: ErrorRoute(500, "server_error", public_message=INTERNAL_MESSAGE),
    FileStorageError: ErrorRoute(500, "server_error"),
    ShutterBoxError: ErrorRoute(500, "server_error"),
}


def error_body(code: str, message: str, details: Optional[dict] = None) -> dict:
    body = {"error": code, "message": message, "request_id": request_id_var.get("")}
    if details:
        body["details"] = details
    return body


def _route_for(exc: ShutterBoxError) -> ErrorRoute:
    for cls in type(exc).__mro__:
        if cls in ERROR_ROUTES:
            return ERROR_ROUTES[cls]
    return ERROR_ROUTES[ShutterBoxError]


def _extra_headers(exc: ShutterBoxError) -> Optional[Dict[str, str]]:
    if isinstance(exc, UnauthorizedError):
        return {"WWW-Authenticate": "Bearer"}
    if isinstance(exc, RateLimitExceededError):
        return {"Retry-After": str(exc.retry_after)}
    if isinstance(exc, CircuitBreakerOpenError):
        return {"Retry-After": str(exc.recovery_time)}
    if isinstance(exc, VisionServiceError) and exc.retry_after:
        return {"Retry-After": str(exc.retry_after)}
    return None


async def handle_app_error(request: Request, exc: ShutterBoxError) -> JSONResponse:
    route = _route_for(exc)
    logger.log(
        route.level,
        "%s %s -> %d %s: %s | %s",
        request.method,
        request.url.path,
        route.status,
        type(exc).__name__,
        exc.message,
        exc.context,
    )
    return JSONResponse(
        status_code=route.status,
        content=error_body(
            route.code,
            route.public_message or exc.message,
            exc.context if route.show_context else None,
        ),
        headers=_extra_headers(exc),
    )


async def handle_bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, errors)
    fields = [".".join(str(part) for part in err.get("loc", ())) for err in errors]
    return JSONResponse(
        status_code=400,
        content=error_body(
            "validation_error",
            "The request body or parameters are invalid.",
            {"fields": fields},
        ),
    )


async def handle_duplicate(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Uniqueness violated on %s: %s", request.url.path, exc.orig)
    return JSONResponse(status_code=409, content=error_body("conflict", "The resource already exists."))


async def handle_sqlalchemy(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database failure on %s", request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=error_body("server_error", INTERNAL_MESSAGE))


async def handle_crash(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled %s on %s", type(exc).__name__, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_body(
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Starlette dispatches on the most specific registered class in the MRO,
    so IntegrityError beats SQLAlchemyError and TransactionRollbackError
    lands on the DatabaseError route. SQL, paths and stack traces go to the
    log only.
    """
    for exc_class in ERROR_ROUTES:
        app.add_exception_handler(exc_class, handle_app_error)
    app.add_exception_handler(RequestValidationError, handle_bad_request)
    app.add_exception_handler(IntegrityError, handle_duplicate)
    app.add_exception_handler(SQLAlchemyError, handle_sqlalchemy)
    app.add_exception_handler(Exception, handle_crash)


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="ShutterBox API",
        description=(
            "Photo sharing backend: uploads with EXIF, color and landmark analysis, "
            "user profiles, favorites and follows."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        default_response_class=ShutterBoxJSONResponse,
        lifespan=lifespan,
    )

    # Last added runs first: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(images.router)
    app.include_router(files.router)
    app.include_router(health.router)

    return app


app = create_app()
