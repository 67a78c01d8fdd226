"""Static configuration for the marketplace services.

Runtime, admin-editable values (bid window, fees, radius) live in
``carefayre.settings.AppSettings`` instead; this module holds values that
are fixed per deployment.
"""

import os
from dataclasses import dataclass
from typing import Optional

# Hours the other party has to answer a timesheet query or response
DEFAULT_QUERY_RESPONSE_HOURS = 24

# The query that would push query_count past this escalates instead
DEFAULT_MAX_QUERIES = 2


@dataclass
class MarketplaceConfig:
    """Deployment configuration for the marketplace services."""

    query_response_hours: int = DEFAULT_QUERY_RESPONSE_HOURS
    max_queries_before_escalation: int = DEFAULT_MAX_QUERIES
    # Used to build call-to-action links in emails
    app_base_url: str = "http://localhost:8080"
    # Optional user that receives escalated timesheets
    support_user_id: Optional[str] = None
    currency_symbol: str = "£"
    platform_name: str = "Care Fayre"

    def __post_init__(self):
        if self.query_response_hours <= 0:
            raise ValueError("query_response_hours must be positive")
        if self.max_queries_before_escalation < 0:
            raise ValueError("max_queries_before_escalation cannot be negative")
        self.app_base_url = self.app_base_url.rstrip("/")

    def job_url(self, job_id: str) -> str:
        return f"{self.app_base_url}/job/{job_id}"

    def agreement_url(self, job_id: str) -> str:
        return f"{self.app_base_url}/agreement/{job_id}"

    @classmethod
    def from_env(cls) -> "MarketplaceConfig":
        """Build config from CAREFAYRE_* environment variables."""
        return cls(
            query_response_hours=int(
                os.environ.get("CAREFAYRE_QUERY_RESPONSE_HOURS", DEFAULT_QUERY_RESPONSE_HOURS)
            ),
            max_queries_before_escalation=int(
                os.environ.get("CAREFAYRE_MAX_QUERIES", DEFAULT_MAX_QUERIES)
            ),
            app_base_url=os.environ.get("CAREFAYRE_APP_BASE_URL", "http://localhost:8080"),
            support_user_id=os.environ.get("CAREFAYRE_SUPPORT_USER_ID") or None,
        )
