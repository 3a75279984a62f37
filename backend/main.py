"""Admini application factory, lifespan and server entry point."""

from __future__ import annotations

import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

from backend.api.admin import router as admin_router
from backend.api.auth import page_router as auth_page_router
from backend.api.auth import router as auth_router
from backend.api.health import router as health_router
from backend.api.pages import admin_router as admin_pages_router
from backend.api.pages import router as pages_router
from backend.api.runtime import router as runtime_router
from backend.api.storage import router as storage_router
from backend.config import Settings
from backend.exceptions import InternalServerError, NotFoundError
from backend.filesystem.json_store import JsonDocumentStore
from backend.middleware.gating import RouteGatingMiddleware
from backend.services.action_service import ActionStatusBoard
from backend.services.auth_service import ensure_default_user
from backend.services.document_service import DocumentService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable

    from starlette.responses import Response

    from backend.schemas.app import AppDocument

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Log to stdout; DEBUG in debug mode."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Outbound calls are logged by the services.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.INFO if debug else logging.WARNING)


async def _seed_default_user(documents: DocumentService, settings: Settings) -> None:
    if documents.document.users:
        return

    def seed(doc: AppDocument) -> tuple[AppDocument, None]:
        return ensure_default_user(doc, settings) or doc, None

    await documents.apply(seed)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Load the document, seed the default user and own the outbound HTTP client."""
    settings: Settings = app.state.settings
    settings.validate_runtime_security()
    _configure_logging(settings.debug)
    logger.info("Starting Admini (debug=%s, data file %s)", settings.debug, settings.data_file)

    documents = DocumentService(JsonDocumentStore(path=settings.data_file))
    try:
        documents.reload()
    except Exception as exc:
        logger.critical("Failed to load data file %s: %s", settings.data_file, exc)
        raise
    app.state.documents = documents

    try:
        await _seed_default_user(documents, settings)
    except Exception as exc:
        logger.critical("Failed to seed default user: %s.", exc)
        raise

    # Tests preset a client backed by a mock transport.
    owns_client = getattr(app.state, "http_client", None) is None
    if owns_client:
        app.state.http_client = httpx.AsyncClient(timeout=settings.outbound_timeout_seconds)
    http_client: httpx.AsyncClient = app.state.http_client
    app.state.status_board = ActionStatusBoard(settings.action_status_display_seconds)

    yield

    if owns_client:
        try:
            await http_client.aclose()
        except Exception as exc:
            logger.error("Error during HTTP client shutdown: %s", exc, exc_info=True)

    logger.info("Admini stopped")


def _add_middleware(app: FastAPI, settings: Settings) -> None:
    """Install the middleware stack; the last one added runs first."""
    app.add_middleware(RouteGatingMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=500)

    cors_origins = settings.cors_origins or (
        ["http://localhost:3000", "http://localhost:8000"] if settings.debug else []
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    trusted_hosts = settings.trusted_hosts or (
        ["localhost", "127.0.0.1", "::1", "test", "testserver"] if settings.debug else []
    )
    if trusted_hosts:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=trusted_hosts)

    @app.middleware("http")
    async def security_headers(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        response = await call_next(request)
        if not settings.security_headers_enabled:
            return response
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        # The editor embeds the design preview in a frame.
        if not request.url.path.startswith("/admin/pages/"):
            response.headers.setdefault("X-Frame-Options", "DENY")
        return response


def _include_routers(app: FastAPI) -> None:
    for router in (
        health_router,
        auth_router,
        auth_page_router,
        storage_router,
        admin_router,
        runtime_router,
        admin_pages_router,
    ):
        app.include_router(router)
    # Catch-all published routes go last.
    app.include_router(pages_router)


def _server_error(detail: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"detail": detail})


def _register_exception_handlers(app: FastAPI) -> None:
    """Map domain and storage errors that escape the routers to JSON responses."""

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            errors.append(
                {
                    "field": str(loc[-1]) if loc else "unknown",
                    "message": err.get("msg", "Invalid value"),
                }
            )
        logger.warning("Invalid request to %s %s: %s", request.method, request.url.path, errors)
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        logger.info("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=404, content={"detail": str(exc) or "Not found"})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=422, content={"detail": str(exc) or "Invalid value"})

    # Registered after ValueError; handlers resolve by MRO so the subclass wins.
    @app.exception_handler(json.JSONDecodeError)
    async def json_error_handler(request: Request, exc: json.JSONDecodeError) -> JSONResponse:
        logger.error(
            "Corrupt data file during %s %s: %s",
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
        return _server_error("Data integrity error")

    @app.exception_handler(OSError)
    async def os_error_handler(request: Request, exc: OSError) -> JSONResponse:
        if isinstance(exc, (ConnectionError, TimeoutError)):
            raise exc
        logger.error(
            "Storage error during %s %s: %s",
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
        return _server_error("Storage operation failed")

    @app.exception_handler(InternalServerError)
    async def internal_server_error_handler(
        request: Request, exc: InternalServerError
    ) -> JSONResponse:
        logger.error(
            "Internal error in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return _server_error("Internal server error")

    @app.exception_handler(TypeError)
    async def type_error_handler(request: Request, exc: TypeError) -> JSONResponse:
        logger.error(
            "[BUG] TypeError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return _server_error("Internal server error")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the Admini application: admin panel, runtime API and published pages."""
    if settings is None:
        settings = Settings()

    docs_enabled = settings.debug or settings.expose_docs
    app = FastAPI(
        title="Admini",
        description="Low-code admin builder for REST-backed applications",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.state.settings = settings

    _add_middleware(app, settings)
    _include_routers(app)
    _register_exception_handlers(app)
    return app


app = create_app()


def cli_entry() -> None:
    """Run the server with the settings of the module-level app."""
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(
        "backend.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
