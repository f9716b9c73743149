"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from frontdesk.config.logging import setup_logging
from frontdesk.config.settings import get_settings
from frontdesk.exceptions import AuthenticationError, TenantNotFoundError
from frontdesk.identity.memory import AccountDirectory
from frontdesk.session.registry import SessionContextFactory, SessionRegistry
from frontdesk.tenancy.backend import InMemoryBusinessBackend, create_business_backend
from frontdesk.tenancy.selection_store import create_selection_store
from frontdesk.web.guards import GuardPending, GuardRedirect
from frontdesk.web.middleware import BrowserIdentityMiddleware, RequestIDMiddleware
from frontdesk.web.routes.auth import router as auth_router
from frontdesk.web.routes.pages import router as pages_router
from frontdesk.web.routes.pages import templates
from frontdesk.web.routes.session import router as session_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from frontdesk.config.settings import Settings
    from frontdesk.tenancy.backend import BusinessBackend
    from frontdesk.tenancy.selection_store import SelectionStore

logger = structlog.get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    directory: AccountDirectory | None = None,
    backend: BusinessBackend | None = None,
    selection_store: SelectionStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators can be injected for tests; otherwise they are built from
    settings, and memory mode is seeded with demo accounts.
    """
    settings = settings or get_settings()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)

    if directory is None and backend is None and settings.identity_mode == "memory":
        directory = AccountDirectory()
        memory_backend = InMemoryBusinessBackend()
        if settings.seed_demo_data:
            from frontdesk.demo import seed_demo_data

            seed_demo_data(directory, memory_backend)
        backend = memory_backend
    if backend is None:
        backend = create_business_backend(settings)
    if selection_store is None:
        selection_store = create_selection_store(settings.selection_store_path)

    registry = SessionRegistry(
        SessionContextFactory(settings, backend, selection_store, directory),
        max_age=settings.session_max_age,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await registry.close_all()
        await backend.aclose()
        logger.info("app_shutdown")

    app = FastAPI(
        title="FrontDesk",
        description="Multi-tenant front desk for service businesses",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.backend = backend
    app.state.selection_store = selection_store
    app.state.directory = directory
    app.state.registry = registry

    @app.exception_handler(GuardRedirect)
    async def guard_redirect_handler(request: Request, exc: GuardRedirect) -> RedirectResponse:
        return RedirectResponse(url=exc.decision.location or "/", status_code=303)

    @app.exception_handler(GuardPending)
    async def guard_pending_handler(request: Request, exc: GuardPending) -> HTMLResponse:
        # Neutral loading page; it reloads itself instead of redirecting
        return templates.TemplateResponse(
            request,
            "loading.html",
            {"refresh_url": str(request.url), "nav_links": [], "session": None},
            headers={"Cache-Control": "no-store"},
        )

    @app.exception_handler(AuthenticationError)
    async def auth_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.user_message})

    @app.exception_handler(TenantNotFoundError)
    async def tenant_not_found_handler(request: Request, exc: TenantNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    # Middleware: last added runs first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )
    app.add_middleware(
        BrowserIdentityMiddleware,
        secret_key=settings.secret_key,
        client_max_age=settings.client_cookie_max_age,
        secure=not settings.debug,
    )
    app.add_middleware(RequestIDMiddleware)

    @app.get("/api/health")
    async def health_check() -> dict[str, object]:
        return {
            "status": "ok",
            "identity_mode": settings.identity_mode,
            "sessions": len(registry),
        }

    app.include_router(auth_router)
    app.include_router(session_router)
    app.include_router(pages_router)

    logger.info("app_created", identity_mode=settings.identity_mode)
    return app
