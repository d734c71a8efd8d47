"""Main FastAPI application"""

import logging
import time
import traceback
import uuid
from pathlib import Path
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.exc import SQLAlchemyError

from fitsession.api.v1 import session as session_routes
from fitsession.config import Settings
from fitsession.core.cipher import TokenCipher
from fitsession.core.database import Database
from fitsession.core.exceptions import BaseAPIException, StoreUnavailableError
from fitsession.core.metrics import REQUEST_COUNT, REQUEST_LATENCY
from fitsession.schemas.response import ErrorResponse, HealthResponse
from fitsession.services.audit_service import AuditService
from fitsession.services.identity_provider import IdentityProviderClient
from fitsession.services.rate_limiter import SlidingWindowLimiter
from fitsession.services.session_service import SessionService
from fitsession.services.session_store import SessionStore, build_session_store

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(settings: Settings) -> None:
    """Configure root logging once: stderr always, plus a file when LOG_FILE is set"""
    handlers = [logging.StreamHandler()]
    if settings.LOG_FILE:
        Path(settings.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.LOG_FILE))

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )


def _error_response(request: Request, status_code: int, message: str, details=None) -> JSONResponse:
    body = ErrorResponse(message=message, details=details or None, path=request.url.path)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def create_app(
    settings: Settings,
    *,
    store: Optional[SessionStore] = None,
    identity_provider: Optional[IdentityProviderClient] = None,
    database: Optional[Database] = None,
) -> FastAPI:
    """
    Build the application and every service it depends on.

    Raises:
        ConfigurationError: If the encryption secret is missing or the
            configuration is unsafe for the environment
    """
    settings.validate_security_settings()
    configure_logging(settings)

    cipher = TokenCipher(settings.REFRESH_TOKEN_SECRET)

    if database is None and store is None and settings.SESSION_STORE_BACKEND == "database":
        database = Database.from_settings(settings)
    if store is None:
        store = build_session_store(settings, database)
    if identity_provider is None:
        identity_provider = IdentityProviderClient.from_settings(settings)

    audit_service = AuditService(database)
    session_service = SessionService.from_settings(settings, store, cipher, identity_provider)
    rate_limiter = SlidingWindowLimiter(settings.REFRESH_RATE_LIMIT_PER_MINUTE, window_seconds=60)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)
        logger.info("Environment: %s, session store: %s", settings.ENVIRONMENT, type(store).__name__)
        if database is not None:
            try:
                database.init()
                database.init_schema(settings.DB_INIT_MODE, require_head=settings.DB_REQUIRE_HEAD)
                logger.info("Database initialized successfully")
            except Exception as e:
                logger.error("Failed to initialize database: %s", e)
                raise
        if not identity_provider.configured:
            logger.warning("Identity provider is not configured; every refresh will be rejected")
        try:
            yield
        finally:
            identity_provider.close()
            if database is not None:
                database.shutdown()
            logger.info("Shutting down %s", settings.APP_NAME)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        docs_url="/api/docs" if settings.DEBUG else None,
        redoc_url="/api/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.session_store = store
    app.state.session_service = session_service
    app.state.audit_service = audit_service
    app.state.rate_limiter = rate_limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )

    @app.middleware("http")
    async def add_headers_and_timing(request: Request, call_next):
        """Add security headers, request id and request metrics"""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start = time.time()
        response = await call_next(request)
        duration = time.time() - start

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        response.headers["X-Request-ID"] = request_id

        REQUEST_COUNT.labels(request.method, request.url.path, str(response.status_code)).inc()
        REQUEST_LATENCY.labels(request.method, request.url.path).observe(duration)

        if duration > 1.0:
            logger.warning(
                "Slow request: %s %s took %.2fs request_id=%s",
                request.method,
                request.url.path,
                duration,
                request_id,
            )
        return response

    @app.exception_handler(BaseAPIException)
    async def api_exception_handler(request: Request, exc: BaseAPIException):
        """Handle custom API exceptions"""
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "API Exception: %s (status=%s path=%s details=%s)",
            exc.message,
            exc.status_code,
            request.url.path,
            exc.details,
        )
        details = exc.details if exc.expose_details else None
        return _error_response(request, exc.status_code, exc.message, details)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors"""
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        logger.warning("Validation error on %s: %s", request.url.path, errors)
        return _error_response(request, status.HTTP_400_BAD_REQUEST, "Validation failed", {"errors": errors})

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        """Handle database errors"""
        logger.error("Database error on %s: %s", request.url.path, type(exc).__name__)
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "A database error occurred. Please try again later.",
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions"""
        logger.critical(
            "Unhandled exception on %s: %s\n%s",
            request.url.path,
            type(exc).__name__,
            traceback.format_exc(),
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred.",
        )

    @app.get("/health", response_model=HealthResponse)
    def health_check():
        """Readiness of the session store and identity provider configuration"""
        store_ok = True
        store_error = None
        try:
            store.ping()
        except StoreUnavailableError as exc:
            store_ok = False
            store_error = exc.details.get("detail") or exc.message
        except RuntimeError as exc:
            store_ok = False
            store_error = str(exc)

        provider_ok = identity_provider.configured
        return HealthResponse(
            ok=store_ok and provider_ok,
            status="healthy" if store_ok and provider_ok else "degraded",
            version=settings.APP_VERSION,
            readiness={
                "session_store": {"ok": store_ok, "backend": settings.SESSION_STORE_BACKEND, "error": store_error},
                "identity_provider": {"ok": provider_ok},
                "admin_gate": {
                    "static_token": bool(settings.ADMIN_API_TOKEN),
                    "signed_token": bool(settings.ADMIN_JWT_SECRET),
                },
            },
        )

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "status": "running",
            "docs": "/api/docs" if settings.DEBUG else "disabled",
        }

    app.include_router(session_routes.router, prefix="/api/auth", tags=["Session"])
    return app
