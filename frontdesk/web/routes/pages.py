"""Server-rendered HTML page routes."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from frontdesk.access.permissions import DASHBOARD_LINKS
from frontdesk.exceptions import BackendError
from frontdesk.web.dependencies import (
    get_app_settings,
    get_backend,
    get_session_context,
    require_page_access,
)

if TYPE_CHECKING:
    from frontdesk.config.settings import Settings
    from frontdesk.session.context import SessionContext
    from frontdesk.tenancy.backend import BusinessBackend

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["pages"])

templates = Jinja2Templates(directory=str(Path(__file__).parent.parent / "templates"))

_SECTIONS = {link.href.rsplit("/", 1)[-1]: link for link in DASHBOARD_LINKS if link.href}


def page_context(context: SessionContext, request: Request, **extra: Any) -> dict[str, Any]:
    """Template variables every page shares."""
    return {
        "session": context.snapshot(),
        "nav_links": context.navbar_links(),
        "message": request.query_params.get("message"),
        **extra,
    }


# ---------------------------------------------------------------------------
# Public pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
async def landing_page(
    request: Request, context: SessionContext = Depends(get_session_context)
) -> HTMLResponse:
    return templates.TemplateResponse(request, "landing.html", page_context(context, request))


@router.get("/directory", response_class=HTMLResponse)
async def directory_page(
    request: Request, context: SessionContext = Depends(get_session_context)
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "page.html",
        page_context(context, request, title="Directory", body="Find a local business."),
    )


@router.get("/demo-chat", response_class=HTMLResponse)
async def demo_chat_page(
    request: Request, context: SessionContext = Depends(get_session_context)
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "page.html",
        page_context(context, request, title="Demo chat", body="Try the AI front desk."),
    )


@router.get("/marketplace", response_class=HTMLResponse)
async def marketplace_page(
    request: Request,
    context: SessionContext = Depends(get_session_context),
    settings: Settings = Depends(get_app_settings),
) -> HTMLResponse:
    if not settings.marketplace_enabled:
        return HTMLResponse(content="Page not found", status_code=404)
    return templates.TemplateResponse(
        request,
        "page.html",
        page_context(context, request, title="Marketplace", body="Browse local services."),
    )


@router.get("/b/{slug}", response_class=HTMLResponse)
async def business_public_page(
    request: Request,
    slug: str,
    context: SessionContext = Depends(get_session_context),
    backend: BusinessBackend = Depends(get_backend),
) -> HTMLResponse:
    try:
        business = await backend.get_business_by_slug(slug)
    except BackendError as exc:
        logger.warning("business_lookup_failed", slug=slug, error=str(exc))
        business = None
    if business is None:
        return HTMLResponse(content="Business not found", status_code=404)
    return templates.TemplateResponse(
        request, "business.html", page_context(context, request, business=business)
    )


# ---------------------------------------------------------------------------
# Guarded pages
# ---------------------------------------------------------------------------


@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard_page(
    request: Request, context: SessionContext = Depends(require_page_access)
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        page_context(
            context,
            request,
            section=None,
            sidebar=context.get_authorized_links(DASHBOARD_LINKS),
        ),
    )


@router.get("/dashboard/{section}", response_class=HTMLResponse)
async def dashboard_section_page(
    request: Request,
    section: str,
    context: SessionContext = Depends(require_page_access),
) -> HTMLResponse:
    link = _SECTIONS.get(section)
    if link is None or section == "dashboard":
        return HTMLResponse(content="Page not found", status_code=404)
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        page_context(
            context,
            request,
            section=link,
            sidebar=context.get_authorized_links(DASHBOARD_LINKS),
        ),
    )


@router.get("/onboarding", response_class=HTMLResponse)
async def onboarding_page(
    request: Request, context: SessionContext = Depends(require_page_access)
) -> HTMLResponse:
    return templates.TemplateResponse(request, "onboarding.html", page_context(context, request))


@router.get("/client", response_class=HTMLResponse)
async def client_home_page(
    request: Request, context: SessionContext = Depends(require_page_access)
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "page.html",
        page_context(context, request, title="My requests", body="Your bookings and messages."),
    )
