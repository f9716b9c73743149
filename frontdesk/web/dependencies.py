"""FastAPI dependency injection and shared state."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING

from fastapi import Depends, Request

from frontdesk.types import GuardStatus
from frontdesk.web.guards import GuardPending, GuardRedirect, evaluate

if TYPE_CHECKING:
    from frontdesk.config.settings import Settings
    from frontdesk.session.context import SessionContext
    from frontdesk.session.registry import SessionRegistry
    from frontdesk.tenancy.backend import BusinessBackend


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_backend(request: Request) -> BusinessBackend:
    return request.app.state.backend


async def get_session_context(request: Request) -> AsyncGenerator[SessionContext, None]:
    """Yield the live session context for this browser session, created on first use."""
    registry = get_registry(request)
    session_id = request.state.session_id
    context = await registry.get_or_create(session_id, request.state.client_id)
    try:
        yield context
    finally:
        await registry.release(session_id, context)


async def require_page_access(
    request: Request,
    context: SessionContext = Depends(get_session_context),
    settings: Settings = Depends(get_app_settings),
) -> SessionContext:
    """Guard dependency for protected pages.

    Raises GuardPending while the context is resolving and GuardRedirect when
    the visitor belongs somewhere else; the app turns both into responses.
    """
    decision = await evaluate(context, request.url.path, settings.guard_wait_seconds)
    if decision.status == GuardStatus.LOADING:
        raise GuardPending(request.url.path)
    if decision.status == GuardStatus.REDIRECT:
        raise GuardRedirect(decision)
    return context
