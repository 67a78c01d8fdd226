"""
Agency and customer profiles.

Profiles supply the names and addresses quoted in rate agreements and the
agency identity bids are placed under. Agencies are verified by an admin
and decorated with their CQC rating from the registry.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from carefayre.errors import InvalidInputError, NotAuthorizedError, NotFoundError
from carefayre.identity import Role, is_admin, require_role
from carefayre.registry import NullRegistry
from carefayre.utils import iso, new_id, parse_datetime, utc_now

logger = logging.getLogger(__name__)

AGENCY_EDITABLE_FIELDS = frozenset(
    {
        "agency_name",
        "phone",
        "website",
        "bio",
        "care_types_offered",
        "service_radius_miles",
        "cqc_provider_id",
        "cqc_location_id",
        "cqc_explanation",
    }
)


@dataclass
class AgencyProfile:
    """Public profile of a care agency."""

    id: str
    user_id: str
    agency_name: str
    cqc_provider_id: Optional[str] = None
    cqc_location_id: Optional[str] = None
    cqc_verified: bool = False
    cqc_rating: Optional[str] = None
    cqc_last_checked: Optional[datetime] = None
    cqc_explanation: Optional[str] = None
    service_radius_miles: int = 10
    care_types_offered: List[str] = field(default_factory=list)
    phone: Optional[str] = None
    website: Optional[str] = None
    bio: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.agency_name or not self.agency_name.strip():
            raise ValueError("Agency name is required")
        if self.service_radius_miles <= 0:
            raise ValueError("Service radius must be positive")

    @property
    def cqc_id(self) -> str:
        return self.cqc_location_id or self.cqc_provider_id or "Not provided"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "agency_name": self.agency_name,
            "cqc_provider_id": self.cqc_provider_id,
            "cqc_location_id": self.cqc_location_id,
            "cqc_verified": self.cqc_verified,
            "cqc_rating": self.cqc_rating,
            "cqc_last_checked": iso(self.cqc_last_checked),
            "cqc_explanation": self.cqc_explanation,
            "service_radius_miles": self.service_radius_miles,
            "care_types_offered": list(self.care_types_offered),
            "phone": self.phone,
            "website": self.website,
            "bio": self.bio,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgencyProfile":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            agency_name=data["agency_name"],
            cqc_provider_id=data.get("cqc_provider_id"),
            cqc_location_id=data.get("cqc_location_id"),
            cqc_verified=bool(data.get("cqc_verified", False)),
            cqc_rating=data.get("cqc_rating"),
            cqc_last_checked=parse_datetime(data.get("cqc_last_checked")),
            cqc_explanation=data.get("cqc_explanation"),
            service_radius_miles=data.get("service_radius_miles", 10),
            care_types_offered=list(data.get("care_types_offered") or []),
            phone=data.get("phone"),
            website=data.get("website"),
            bio=data.get("bio"),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )


@dataclass
class CustomerProfile:
    """The account holder named on rate agreements."""

    user_id: str
    full_name: str
    address: str = ""
    postcode: Optional[str] = None
    phone: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "full_name": self.full_name,
            "address": self.address,
            "postcode": self.postcode,
            "phone": self.phone,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CustomerProfile":
        return cls(
            user_id=data["user_id"],
            full_name=data.get("full_name", ""),
            address=data.get("address", ""),
            postcode=data.get("postcode"),
            phone=data.get("phone"),
        )


class ProfileService:
    """Create, edit, verify and rate-check profiles."""

    def __init__(self, storage, identity, settings, registry=None, clock=None):
        self.storage = storage
        self.identity = identity
        self.settings = settings
        self.registry = registry or NullRegistry()
        self._now = clock or utc_now

    def _get_agency(self, profile_id: str) -> AgencyProfile:
        profile = self.storage.get_agency_profile(profile_id)
        if profile is None:
            raise NotFoundError(f"Agency profile {profile_id} not found")
        return profile

    def get_agency_profile(self, profile_id: str) -> AgencyProfile:
        return self._get_agency(profile_id)

    def create_agency_profile(
        self,
        user_id: str,
        agency_name: str,
        service_radius_miles: Optional[int] = None,
        cqc_provider_id: Optional[str] = None,
        cqc_location_id: Optional[str] = None,
        care_types_offered: Optional[List[str]] = None,
        phone: Optional[str] = None,
    ) -> AgencyProfile:
        require_role(self.identity, user_id, Role.AGENCY)
        settings = self.settings.get()
        radius = settings.clamp_radius(service_radius_miles or settings.max_radius_miles)
        now = self._now()
        try:
            profile = AgencyProfile(
                id=new_id(),
                user_id=user_id,
                agency_name=agency_name,
                cqc_provider_id=cqc_provider_id,
                cqc_location_id=cqc_location_id,
                service_radius_miles=radius,
                care_types_offered=list(care_types_offered or []),
                phone=phone,
                created_at=now,
                updated_at=now,
            )
        except ValueError as e:
            raise InvalidInputError(str(e)) from e

        with self.storage.transaction():
            if self.storage.get_agency_profile_for_user(user_id) is not None:
                raise InvalidInputError("This agency already has a profile")
            self.storage.save_agency_profile(profile)

        logger.info(f"Agency profile {profile.id} created for {user_id}")
        return profile

    def update_agency_profile(self, profile_id: str, actor_id: str, **changes) -> AgencyProfile:
        """Edit an agency profile. The service radius is clamped to the admin cap."""
        unknown = set(changes) - AGENCY_EDITABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        with self.storage.transaction():
            profile = self._get_agency(profile_id)
            if profile.user_id != actor_id and not is_admin(self.identity, actor_id):
                raise NotAuthorizedError("You can only edit your own agency profile")
            if changes.get("service_radius_miles") is not None:
                changes["service_radius_miles"] = self.settings.get().clamp_radius(
                    changes["service_radius_miles"]
                )
            data = profile.to_dict()
            data.update(changes)
            try:
                updated = AgencyProfile.from_dict(data)
            except ValueError as e:
                raise InvalidInputError(str(e)) from e
            updated.updated_at = self._now()
            self.storage.save_agency_profile(updated)
        return updated

    def verify_agency(self, profile_id: str, actor_id: str) -> AgencyProfile:
        """Admin marks an agency's CQC registration as checked."""
        require_role(self.identity, actor_id, Role.ADMIN)
        with self.storage.transaction():
            profile = self._get_agency(profile_id)
            profile.cqc_verified = True
            profile.updated_at = self._now()
            self.storage.save_agency_profile(profile)
        logger.info(f"Agency {profile_id} verified by {actor_id}")
        return profile

    def list_unverified_agencies(self, actor_id: str) -> List[AgencyProfile]:
        require_role(self.identity, actor_id, Role.ADMIN)
        return self.storage.list_agency_profiles(verified=False)

    def refresh_cqc_rating(self, profile_id: str):
        """Look up the agency's current rating and cache it on the profile.

        Returns the CQCRating. An unavailable rating leaves the cached value
        untouched.
        """
        profile = self._get_agency(profile_id)
        rating = self.registry.lookup_rating(
            location_id=profile.cqc_location_id, provider_id=profile.cqc_provider_id
        )
        if rating.available:
            with self.storage.transaction():
                profile = self._get_agency(profile_id)
                profile.cqc_rating = rating.overall_rating
                profile.cqc_last_checked = self._now()
                self.storage.save_agency_profile(profile)
        return rating

    def save_customer_profile(
        self,
        user_id: str,
        full_name: str,
        address: str = "",
        postcode: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> CustomerProfile:
        require_role(self.identity, user_id, Role.CUSTOMER)
        if not full_name or not full_name.strip():
            raise InvalidInputError("Full name is required")
        profile = CustomerProfile(
            user_id=user_id, full_name=full_name, address=address, postcode=postcode, phone=phone
        )
        self.storage.save_customer_profile(profile)
        return profile

    def get_customer_profile(self, user_id: str) -> Optional[CustomerProfile]:
        return self.storage.get_customer_profile(user_id)
