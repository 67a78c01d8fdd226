"""
CQC rating registry lookup.

Fetches the overall rating and latest report for a CQC location or
provider. Used only to decorate agency profiles, so every failure degrades
to an "unavailable" rating instead of raising.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

CQC_API_BASE = "https://api.cqc.org.uk/public/v1"
CQC_PARTNER_CODE = "CAREMATCH"

UNAVAILABLE = "unavailable"

# Ratings that need no explanation on an agency profile
GOOD_RATINGS = ("Outstanding", "Good")


@dataclass
class CQCRating:
    """Result of a registry lookup."""

    overall_rating: Optional[str] = None
    report_date: Optional[str] = None
    report_uri: Optional[str] = None
    available: bool = True
    error: Optional[str] = None

    @classmethod
    def unavailable(cls, error: Optional[str] = None) -> "CQCRating":
        return cls(available=False, error=error)

    @property
    def display_rating(self) -> str:
        if not self.available or not self.overall_rating:
            return UNAVAILABLE
        return self.overall_rating

    @property
    def needs_explanation(self) -> bool:
        """True when a known rating is below Good."""
        return self.available and bool(self.overall_rating) and self.overall_rating not in GOOD_RATINGS

    def to_dict(self) -> dict:
        return {
            "overall_rating": self.overall_rating,
            "report_date": self.report_date,
            "report_uri": self.report_uri,
            "available": self.available,
            "display_rating": self.display_rating,
            "needs_explanation": self.needs_explanation,
        }


class CQCRegistry:
    """Client for the public CQC API."""

    def __init__(
        self,
        base_url: str = CQC_API_BASE,
        partner_code: str = CQC_PARTNER_CODE,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.partner_code = partner_code
        self.timeout = timeout
        self._client = client

    def _url(self, location_id: Optional[str], provider_id: Optional[str]) -> Optional[str]:
        if location_id:
            return f"{self.base_url}/locations/{quote(location_id, safe='')}"
        if provider_id:
            return f"{self.base_url}/providers/{quote(provider_id, safe='')}"
        return None

    def _get(self, url: str) -> httpx.Response:
        params = {"partnerCode": self.partner_code}
        if self._client is not None:
            return self._client.get(url, params=params, timeout=self.timeout)
        with httpx.Client(timeout=self.timeout) as client:
            return client.get(url, params=params)

    def lookup_rating(
        self, location_id: Optional[str] = None, provider_id: Optional[str] = None
    ) -> CQCRating:
        """Look up a rating by location id (preferred) or provider id."""
        url = self._url(location_id, provider_id)
        if url is None:
            return CQCRating.unavailable("No locationId or providerId provided")

        try:
            response = self._get(url)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.warning(f"CQC lookup failed for {url}: {e}")
            return CQCRating.unavailable(f"Network error: {e}")
        except ValueError as e:
            logger.warning(f"CQC returned invalid JSON for {url}: {e}")
            return CQCRating.unavailable("Invalid response")

        overall = ((data.get("currentRatings") or {}).get("overall") or {}).get("rating")
        reports = data.get("reports")
        first_report = reports[0] if isinstance(reports, list) and reports else {}
        report_uri = first_report.get("reportUri")
        return CQCRating(
            overall_rating=overall,
            report_date=first_report.get("reportDate"),
            report_uri=f"{self.base_url}{report_uri}" if report_uri else None,
        )


class NullRegistry:
    """Registry used when no CQC client is configured."""

    def lookup_rating(
        self, location_id: Optional[str] = None, provider_id: Optional[str] = None
    ) -> CQCRating:
        return CQCRating.unavailable("Registry not configured")
