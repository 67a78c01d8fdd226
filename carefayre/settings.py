"""Admin-writable runtime settings.

One settings row per deployment. Values are read when a care request is
created (bid window) and when an agency edits its profile (radius cap).
"""

import logging
from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal
from typing import Optional

from carefayre.errors import InvalidInputError
from carefayre.identity import Role, require_role
from carefayre.utils import decimal_str, iso, parse_datetime, to_decimal, utc_now

logger = logging.getLogger(__name__)

DEFAULT_BID_WINDOW_HOURS = 72
DEFAULT_MAX_RADIUS_MILES = 25


def _or_default(value, default):
    return default if value is None or value == "" else value


@dataclass
class AppSettings:
    """Process-wide marketplace settings."""

    bid_window_hours: int = DEFAULT_BID_WINDOW_HOURS
    min_bid_decrement: Decimal = Decimal("0.50")
    # Stored for reporting; never deducted from payment amounts
    platform_fee_pct: Decimal = Decimal("10")
    max_radius_miles: int = DEFAULT_MAX_RADIUS_MILES
    notification_email: Optional[str] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.min_bid_decrement = to_decimal(self.min_bid_decrement)
        self.platform_fee_pct = to_decimal(self.platform_fee_pct)
        self.bid_window_hours = int(self.bid_window_hours)
        self.max_radius_miles = int(self.max_radius_miles)
        if self.bid_window_hours <= 0:
            raise ValueError("bid_window_hours must be positive")
        if self.max_radius_miles <= 0:
            raise ValueError("max_radius_miles must be positive")
        if self.min_bid_decrement < 0:
            raise ValueError("min_bid_decrement cannot be negative")
        if not Decimal("0") <= self.platform_fee_pct <= Decimal("100"):
            raise ValueError("platform_fee_pct must be between 0 and 100")

    def clamp_radius(self, radius_miles: int) -> int:
        return max(1, min(int(radius_miles), self.max_radius_miles))

    def to_dict(self) -> dict:
        return {
            "bid_window_hours": self.bid_window_hours,
            "min_bid_decrement": decimal_str(self.min_bid_decrement),
            "platform_fee_pct": decimal_str(self.platform_fee_pct),
            "max_radius_miles": self.max_radius_miles,
            "notification_email": self.notification_email,
            "updated_at": iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AppSettings":
        return cls(
            bid_window_hours=data.get("bid_window_hours", DEFAULT_BID_WINDOW_HOURS),
            min_bid_decrement=_or_default(data.get("min_bid_decrement"), "0.50"),
            platform_fee_pct=_or_default(data.get("platform_fee_pct"), "10"),
            max_radius_miles=data.get("max_radius_miles", DEFAULT_MAX_RADIUS_MILES),
            notification_email=data.get("notification_email"),
            updated_at=parse_datetime(data.get("updated_at")),
        )


EDITABLE_FIELDS = frozenset(f.name for f in fields(AppSettings)) - {"updated_at"}


class SettingsService:
    """Read and update the settings row."""

    def __init__(self, storage, identity, clock=None):
        self.storage = storage
        self.identity = identity
        self._now = clock or utc_now

    def get(self) -> AppSettings:
        """Stored settings, or defaults when none have been saved."""
        return self.storage.get_settings() or AppSettings()

    def update(self, actor_id: str, **changes) -> AppSettings:
        """Admin-only update of one or more settings."""
        require_role(self.identity, actor_id, Role.ADMIN)
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"Unknown settings: {', '.join(sorted(unknown))}")

        with self.storage.transaction():
            current = self.get().to_dict()
            current.update({k: v for k, v in changes.items() if v is not None})
            try:
                updated = AppSettings.from_dict(current)
            except (ValueError, ArithmeticError) as e:
                raise InvalidInputError(str(e)) from e
            updated.updated_at = self._now()
            self.storage.save_settings(updated)

        logger.info(f"Settings updated by {actor_id}: {sorted(changes)}")
        return updated
