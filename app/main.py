import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .backend.base import BackendError
from .backend.local import ChangeHub
from .core.config import get_settings, Settings
from .core.logging import init_logging, make_request_context_middleware
from .db.dal import Database
from .db.migrate import apply_migrations
from .core import errors
from .routers import auth, session, expenses, analytics, ui
from .services.client_session import SessionRegistry

logger = logging.getLogger("app")


def create_app(settings_override: Settings | None = None) -> FastAPI:
    """Application factory.

    settings_override: pass an already constructed Settings instance for tests
    to isolate environment (e.g., temp DB). Falls back to cached get_settings().
    """
    settings = settings_override or get_settings()
    # Initialize logging early
    init_logging(debug=settings.debug)

    # Ensure database schema (idempotent) so test-injected fresh DBs have tables
    try:
        apply_migrations(settings.db_path)  # type: ignore[arg-type]
    except Exception:
        logger.exception("failed to apply migrations on startup")
        raise

    db = Database(settings.db_path)  # type: ignore[arg-type]
    hub = ChangeHub(db)
    registry = SessionRegistry(settings, hub)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Cancel inactivity timers and close live queries of every client session
        logger.info("shutting down %d client session(s)", len(registry))
        registry.dispose_all()

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = db
    app.state.hub = hub
    app.state.sessions = registry

    # Middleware (session cookie issuance, request id / structured logging)
    @app.middleware("http")
    async def session_cookie_middleware(request: Request, call_next):
        response = await call_next(request)
        issued = getattr(request.state, "issued_session_id", None)
        if issued:
            response.set_cookie(
                settings.session_cookie_name, issued, httponly=True, samesite="lax"
            )
        return response

    app.middleware("http")(make_request_context_middleware(settings.session_cookie_name))

    # Error handlers
    app.add_exception_handler(errors.ApiError, errors.api_error_handler)
    app.add_exception_handler(BackendError, errors.backend_error_handler)
    app.add_exception_handler(StarletteHTTPException, errors.http_error_handler)
    app.add_exception_handler(RequestValidationError, errors.validation_error_handler)
    app.add_exception_handler(Exception, errors.server_error_handler)

    # Routers
    app.include_router(auth.router)
    app.include_router(session.router)
    app.include_router(expenses.router)
    app.include_router(analytics.router)
    app.include_router(ui.router)

    @app.get("/")
    async def root():
        return {"message": settings.app_name, "version": settings.version, "ui": "/ui"}

    return app


app = create_app()
