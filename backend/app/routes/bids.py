"""Bid routes."""

from fastapi import APIRouter, Request

from ..auth import CurrentUser
from ..database import Market
from ..logging_config import get_logger
from ..models import BidResponse
from ..rate_limit import limiter

logger = get_logger("carefayre.bids")
router = APIRouter(prefix="/bids", tags=["bids"])


@router.post("/{bid_id}/withdraw", response_model=BidResponse)
@limiter.limit("10/minute")
async def withdraw_bid(request: Request, bid_id: str, auth: CurrentUser, market: Market):
    """Withdraw your own active bid while the request is still open."""
    logger.info(f"POST /bids/{bid_id}/withdraw | user={auth.user_id}")
    return BidResponse(**market.bids.withdraw_bid(bid_id, auth.user_id).to_dict())
