"""
API endpoints for gigs.

Listing and reading gigs is public; creating gigs and the "my gigs" views
require an authenticated user.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator

from ..marketplace.errors import NotFoundError
from ..utils.logger import get_logger
from .context import AppContext, get_context
from .identity import get_current_user
from .models import User

logger = get_logger(__name__)
router = APIRouter(prefix="/api/gigs", tags=["gigs"])


class GigCreateRequest(BaseModel):
    """Request model for posting a gig."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    budget: float = Field(..., ge=0)

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


@router.post("", status_code=201)
async def create_gig(
    request: GigCreateRequest,
    user: User = Depends(get_current_user),
    context: AppContext = Depends(get_context),
) -> Dict[str, Any]:
    gig = await context.gigs.create(
        user.id, request.title, request.description, request.budget
    )
    logger.info(f"Gig {gig.id} posted by {user.id}")
    return gig.to_dict()


@router.get("")
async def list_open_gigs(
    search: Optional[str] = Query(None, max_length=200),
    context: AppContext = Depends(get_context),
) -> List[Dict[str, Any]]:
    """Open gigs, newest first, optionally filtered by title/description."""
    gigs = await context.gigs.list_open(search)
    return [gig.to_dict() for gig in gigs]


@router.get("/my-gigs")
async def list_my_gigs(
    user: User = Depends(get_current_user),
    context: AppContext = Depends(get_context),
) -> List[Dict[str, Any]]:
    gigs = await context.gigs.find_by_owner(user.id)
    return [gig.to_dict() for gig in gigs]


@router.get("/my-active-gigs")
async def list_my_active_gigs(
    user: User = Depends(get_current_user),
    context: AppContext = Depends(get_context),
) -> List[Dict[str, Any]]:
    """
    Every gig the user has bid on, whatever the bid's status.

    Each gig carries the user's own bid under ``bid``.
    """
    bids = await context.bids.find_by_freelancer(user.id)
    return [
        {**bid.gig.to_dict(), "bid": bid.to_summary()}
        for bid in bids
        if bid.gig is not None
    ]


@router.get("/{gig_id}")
async def get_gig(
    gig_id: str, context: AppContext = Depends(get_context)
) -> Dict[str, Any]:
    gig = await context.gigs.find_by_id(gig_id)
    if gig is None:
        raise NotFoundError("Gig not found")
    return gig.to_dict()


def register_gig_routes(app):
    """Register gig routes with the main FastAPI app."""
    app.include_router(router)
