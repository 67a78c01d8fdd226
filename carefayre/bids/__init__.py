"""Bid ledger for Care Fayre.

Models:
- CareRequest: A posted need for care, open to agency bidding
- Bid: An agency's proposed hourly (and optional overnight) rate
- RequestStatus: Care request lifecycle status
- BidStatus: Bid lifecycle status

Service:
- BidService: Request and bid operations (create, bid, accept, withdraw, cancel)
"""

from carefayre.bids.models import (
    CARE_TYPES,
    FREQUENCIES,
    OVERNIGHT_CARE,
    Bid,
    BidStatus,
    CareRequest,
    NightType,
    RequestStatus,
)
from carefayre.bids.service import BidService

__all__ = [
    # Models
    "CareRequest",
    "Bid",
    "RequestStatus",
    "BidStatus",
    "NightType",
    "CARE_TYPES",
    "FREQUENCIES",
    "OVERNIGHT_CARE",
    # Service
    "BidService",
]
