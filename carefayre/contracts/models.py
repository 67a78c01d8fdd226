"""
Rate agreement (contract) data model.

Signature state is never stored; it is derived from the two agreement
timestamps so every reader computes it the same way.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from carefayre.utils import iso, parse_datetime


class SignatureState(str, Enum):
    """Derived signing progress of a rate agreement."""

    UNSIGNED = "unsigned"
    CUSTOMER_SIGNED = "customer_signed"
    AGENCY_SIGNED = "agency_signed"
    FULLY_SIGNED = "fully_signed"


@dataclass
class Contract:
    """The bilateral sign-off document gating job activation."""

    id: str
    job_id: str
    customer_id: str
    agency_id: str
    agreement_text: str
    customer_agreed_at: Optional[datetime] = None
    agency_agreed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.agreement_text:
            raise ValueError("Agreement text is required")
        if self.customer_id == self.agency_id:
            raise ValueError("Customer and agency must be different users")

    @property
    def signature_state(self) -> SignatureState:
        if self.customer_agreed_at and self.agency_agreed_at:
            return SignatureState.FULLY_SIGNED
        if self.customer_agreed_at:
            return SignatureState.CUSTOMER_SIGNED
        if self.agency_agreed_at:
            return SignatureState.AGENCY_SIGNED
        return SignatureState.UNSIGNED

    @property
    def is_fully_signed(self) -> bool:
        return self.signature_state == SignatureState.FULLY_SIGNED

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.customer_id, self.agency_id)

    def has_signed(self, user_id: str) -> bool:
        if user_id == self.customer_id:
            return self.customer_agreed_at is not None
        if user_id == self.agency_id:
            return self.agency_agreed_at is not None
        return False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "customer_id": self.customer_id,
            "agency_id": self.agency_id,
            "agreement_text": self.agreement_text,
            "customer_agreed_at": iso(self.customer_agreed_at),
            "agency_agreed_at": iso(self.agency_agreed_at),
            "signature_state": self.signature_state.value,
            "created_at": iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Contract":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            customer_id=data["customer_id"],
            agency_id=data["agency_id"],
            agreement_text=data["agreement_text"],
            customer_agreed_at=parse_datetime(data.get("customer_agreed_at")),
            agency_agreed_at=parse_datetime(data.get("agency_agreed_at")),
            created_at=parse_datetime(data.get("created_at")),
        )
