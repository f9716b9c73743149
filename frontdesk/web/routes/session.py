"""Session API: what pages read from the session context, and business switching."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from frontdesk.access.permissions import DASHBOARD_LINKS
from frontdesk.types import Permission
from frontdesk.web.dependencies import get_session_context

if TYPE_CHECKING:
    from frontdesk.session.context import SessionContext

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])


class SwitchBusinessRequest(BaseModel):
    business_id: str


@router.get("")
async def get_session(context: SessionContext = Depends(get_session_context)) -> dict[str, Any]:
    """Current identity, businesses and permissions for this browser session."""
    snapshot = context.snapshot()
    return {
        **snapshot.model_dump(mode="json"),
        "settled": context.settled,
        "business_state": context.business_state.value,
        "permissions": [p.value for p in Permission if context.has_permission(p)],
        "links": [
            link.model_dump(mode="json")
            for link in context.get_authorized_links(DASHBOARD_LINKS)
        ],
        "nav_links": [link.model_dump(mode="json") for link in context.navbar_links()],
    }


@router.post("/business")
async def switch_business(
    body: SwitchBusinessRequest, context: SessionContext = Depends(get_session_context)
) -> dict[str, Any]:
    """Make another business active; TenantNotFoundError maps to 404."""
    if not context.is_authenticated:
        raise HTTPException(status_code=401, detail="Not signed in")
    business = context.switch_business(body.business_id)
    return {"status": "ok", "business": business.model_dump(mode="json")}


@router.post("/refresh")
async def refresh_memberships(
    context: SessionContext = Depends(get_session_context),
) -> dict[str, Any]:
    """Re-read memberships, e.g. after onboarding created a business."""
    if not context.is_authenticated:
        raise HTTPException(status_code=401, detail="Not signed in")
    await context.refresh_memberships()
    return {
        "status": "ok",
        "business_state": context.business_state.value,
        "businesses": [b.model_dump(mode="json") for b in context.businesses],
    }
