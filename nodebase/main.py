"""
NodeBase Backend: FastAPI Application Factory
==============================================

What:  Creates and configures the FastAPI application instance.
How:   `create_app()` builds the database, user service, templates and
       procedure router, stores them on `app.state`, registers middleware,
       exception handlers and routes, and returns the app.
Who:   uvicorn (`uvicorn nodebase.main:app`) and the test suite, which
       calls `create_app(settings=..., database=...)` with its own values.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────────┐ ┌─────────┐ ┌─────────┐ ┌───────────┐ │
    │  │  Req ID  │→│ Logging │→│ Session │→│ GZip/CORS │ │
    │  └──────────┘ └─────────┘ └─────────┘ └───────────┘ │
    │                                                     │
    │  Routes:                                            │
    │  ┌──────────┐ ┌──────────┐ ┌─────────┐ ┌─────────┐  │
    │  │ / pages  │ │ auth     │ │/api/trpc│ │ /health │  │
    │  └──────────┘ └──────────┘ └─────────┘ └─────────┘  │
    │                                                     │
    │  app.state: settings, database, user_service,       │
    │             templates, rpc_router                   │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:   configure logging, validate configuration
    Shutdown:  dispose the database engine (close pooled connections)
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.templating import Jinja2Templates
from starlette.middleware.sessions import SessionMiddleware

from nodebase import __version__
from nodebase.auth import guard_redirect_response
from nodebase.config import Settings, settings as default_settings
from nodebase.database import Database
from nodebase.exceptions import GuardRedirect, NodeBaseError, StoreError
from nodebase.middleware.logging import RequestLoggingMiddleware
from nodebase.middleware.request_id import RequestIDMiddleware, request_id_var
from nodebase.routes import auth, health, pages, rpc
from nodebase.schemas.common import ErrorResponse
from nodebase.rpc.app_router import app_router
from nodebase.rpc.procedures import ProcedureRouter
from nodebase.services.user_service import UserService

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

GENERIC_ERROR_MESSAGE = "An internal error occurred. Please try again later."


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = "INFO") -> None:
    """
    Configures the root logger once for the whole process.

    Format: 2024-01-15T12:00:00 [INFO] nodebase.access: GET / 200 12.3ms [a1b2c3d4] ...
    """
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Per-statement and per-connection chatter
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(settings.log_level)
    logger.info("NodeBase %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # The app still serves requests; the problem is logged loudly.
        logger.error("Configuration error: %s", str(e))

    logger.info(
        "Server ready at http://%s:%d (%d procedures at %s)",
        settings.backend_host,
        settings.backend_port,
        len(app.state.rpc_router),
        settings.rpc_endpoint,
    )

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("NodeBase shutting down...")
    await app.state.database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Maps application exceptions to responses for non-RPC routes.

    Handler hierarchy:
        GuardRedirect       → 303 redirect (login / home)
        StoreError          → 500, generic message, details logged
        NodeBaseError       → exc.status_code, exc.message
        Exception           → 500, generic message, traceback logged

    The RPC bridge builds its own error envelopes and never reaches these.
    """

    @app.exception_handler(GuardRedirect)
    async def handle_guard_redirect(request: Request, exc: GuardRedirect):
        logger.debug("Guard redirect %s -> %s", request.url.path, exc.location)
        return guard_redirect_response(exc)

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError):
        rid = request_id_var.get("")
        logger.error("[%s] Store error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="server_error", message=GENERIC_ERROR_MESSAGE, request_id=rid
            ).model_dump(exclude_none=True),
        )

    @app.exception_handler(NodeBaseError)
    async def handle_nodebase_error(request: Request, exc: NodeBaseError):
        rid = request_id_var.get("")
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(level, "[%s] %s: %s", rid, type(exc).__name__, exc.message)
        message = exc.message if exc.status_code < 500 else GENERIC_ERROR_MESSAGE
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=exc.code.lower(), message=message, request_id=rid
            ).model_dump(exclude_none=True),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="internal_server_error", message=GENERIC_ERROR_MESSAGE, request_id=rid
            ).model_dump(exclude_none=True),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    rpc_router: Optional[ProcedureRouter] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Configuration (module-level settings by default).
        database: Database to use; built from settings when omitted. The
            app owns it and disposes it at shutdown.
        rpc_router: Procedure registry (the application router by default).
    """
    settings = settings or default_settings

    app = FastAPI(
        title="NodeBase",
        description="Server-rendered pages over a typed procedure layer.",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.database = database or Database.from_settings(settings)
    app.state.user_service = UserService(settings)
    app.state.templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
    app.state.rpc_router = rpc_router or app_router

    # ── Middleware ────────────────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → Session → GZip → CORS.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=settings.session_cookie,
        max_age=settings.session_max_age,
        same_site="lax",
        https_only=settings.session_https_only,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # ── Routes ────────────────────────────────────────────────────────────
    app.include_router(pages.router)
    app.include_router(auth.router)
    app.include_router(rpc.router, prefix=settings.rpc_endpoint)
    app.include_router(health.router)

    return app


# uvicorn expects `nodebase.main:app` to be importable
app = create_app()
