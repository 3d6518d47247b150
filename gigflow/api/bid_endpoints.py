"""
API endpoints for bids and hiring.

All routes require an authenticated user. Reading a gig's bids and hiring
are restricted to the gig's owner.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..marketplace.errors import ForbiddenError, NotFoundError
from ..utils.logger import get_logger
from .context import AppContext, get_context
from .identity import get_current_user
from .models import User

logger = get_logger(__name__)
router = APIRouter(prefix="/api/bids", tags=["bids"])


class BidCreateRequest(BaseModel):
    """Request model for submitting a bid."""

    model_config = ConfigDict(populate_by_name=True)

    gig_id: str = Field(..., alias="gigId", min_length=1)
    message: str = Field(..., min_length=1, max_length=5000)
    price: float = Field(..., ge=0)

    @field_validator("gig_id", "message", mode="before")
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


@router.post("", status_code=201)
async def submit_bid(
    request: BidCreateRequest,
    user: User = Depends(get_current_user),
    context: AppContext = Depends(get_context),
) -> Dict[str, Any]:
    bid = await context.submissions.submit(
        user.id, request.gig_id, request.message, request.price
    )
    return bid.to_dict()


@router.get("/{gig_id}")
async def list_gig_bids(
    gig_id: str,
    user: User = Depends(get_current_user),
    context: AppContext = Depends(get_context),
) -> List[Dict[str, Any]]:
    """All bids on a gig, newest first. Owner only."""
    gig = await context.gigs.find_by_id(gig_id)
    if gig is None:
        raise NotFoundError("Gig not found")
    if gig.owner_id != user.id:
        raise ForbiddenError("Only the gig owner can view bids")

    bids = await context.bids.find_by_gig(gig_id)
    return [bid.to_dict() for bid in bids]


@router.patch("/{bid_id}/hire")
async def hire_freelancer(
    bid_id: str,
    user: User = Depends(get_current_user),
    context: AppContext = Depends(get_context),
) -> Dict[str, Any]:
    """
    Hire the freelancer behind a bid.

    409 means another hire won the race; the client should refresh.
    """
    logger.info(f"Hire of bid {bid_id} requested by {user.id}")
    result = await context.coordinator.hire(bid_id, user.id)
    return result.to_dict()


def register_bid_routes(app):
    """Register bid routes with the main FastAPI app."""
    app.include_router(router)
