"""Authentication routes: login and sign-up pages, password auth API, logout."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from frontdesk.types import ProfileRole
from frontdesk.web.dependencies import get_app_settings, get_registry, get_session_context

if TYPE_CHECKING:
    from frontdesk.access.routing import PostAuthDecision
    from frontdesk.config.settings import Settings
    from frontdesk.session.context import SessionContext
    from frontdesk.session.registry import SessionRegistry

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["auth"])
templates = Jinja2Templates(directory=str(Path(__file__).parent.parent / "templates"))


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


async def _auth_page(
    request: Request,
    context: SessionContext,
    settings: Settings,
    template: str,
    role: ProfileRole | None = None,
) -> HTMLResponse:
    await context.wait_settled(settings.guard_wait_seconds)
    if context.is_authenticated and context.settled:
        decision = context.post_auth_decision()
        return RedirectResponse(url=decision.target, status_code=303)  # type: ignore[return-value]
    return templates.TemplateResponse(
        request,
        template,
        {
            "session": context.snapshot(),
            "nav_links": context.navbar_links(),
            "message": request.query_params.get("message"),
            "next": request.query_params.get("next", ""),
            "role": role.value if role else "",
        },
    )


@router.get("/login", response_class=HTMLResponse)
async def login_page(
    request: Request,
    context: SessionContext = Depends(get_session_context),
    settings: Settings = Depends(get_app_settings),
) -> HTMLResponse:
    """Render the login page, or send an already signed-in visitor home."""
    return await _auth_page(request, context, settings, "login.html")


@router.get("/signup", response_class=HTMLResponse)
async def signup_page(
    request: Request,
    context: SessionContext = Depends(get_session_context),
    settings: Settings = Depends(get_app_settings),
) -> HTMLResponse:
    return await _auth_page(request, context, settings, "signup.html", ProfileRole.CLIENT)


@router.get("/owner-signup", response_class=HTMLResponse)
async def owner_signup_page(
    request: Request,
    context: SessionContext = Depends(get_session_context),
    settings: Settings = Depends(get_app_settings),
) -> HTMLResponse:
    return await _auth_page(request, context, settings, "signup.html", ProfileRole.OWNER)


# ---------------------------------------------------------------------------
# Password auth API
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    email: str
    password: str
    role_hint: ProfileRole | None = None
    next: str | None = None


class SignupRequest(BaseModel):
    email: str
    password: str
    role: ProfileRole = ProfileRole.CLIENT
    full_name: str | None = None


def _decision_body(decision: PostAuthDecision) -> dict[str, Any]:
    body: dict[str, Any] = {
        "status": "ok",
        "redirect": decision.target,
        "role": decision.role.value if decision.role else None,
    }
    if decision.mismatch is not None:
        body["warning"] = str(decision.mismatch)
    return body


@router.post("/api/auth/login")
async def login(
    body: LoginRequest, context: SessionContext = Depends(get_session_context)
) -> dict[str, Any]:
    """Sign in with email and password; AuthenticationError maps to 401."""
    decision = await context.sign_in(
        body.email, body.password, role_hint=body.role_hint, next_path=body.next
    )
    logger.info("user_logged_in", user_id=context.current_user.id if context.current_user else None)
    return _decision_body(decision)


@router.post("/api/auth/signup")
async def signup(
    body: SignupRequest, context: SessionContext = Depends(get_session_context)
) -> dict[str, Any]:
    metadata = {"full_name": body.full_name} if body.full_name else {}
    result, decision = await context.sign_up(body.email, body.password, body.role, metadata)
    if decision is None:
        return {
            "status": "confirmation_required",
            "email_confirmation_required": result.email_confirmation_required,
        }
    return _decision_body(decision)


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


async def _sign_out(request: Request, context: SessionContext, registry: SessionRegistry) -> None:
    await context.sign_out()
    await registry.discard(request.state.session_id)


@router.post("/api/auth/logout")
async def logout(
    request: Request,
    context: SessionContext = Depends(get_session_context),
    registry: SessionRegistry = Depends(get_registry),
) -> dict[str, str]:
    """Sign out and tear down this browser session's context."""
    await _sign_out(request, context, registry)
    return {"status": "logged_out"}


@router.get("/logout")
async def logout_page(
    request: Request,
    context: SessionContext = Depends(get_session_context),
    registry: SessionRegistry = Depends(get_registry),
) -> RedirectResponse:
    await _sign_out(request, context, registry)
    return RedirectResponse(url="/login", status_code=303)
