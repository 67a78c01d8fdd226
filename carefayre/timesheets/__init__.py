"""Timesheet settlement for Care Fayre.

Models:
- Timesheet: Weekly hours claimed by an agency
- Payment: Ledger entry written when a timesheet is approved
- TimesheetStatus / PaymentStatus / ResponseMode

Service:
- TimesheetService: Submit, approve, query, respond, expiry sweep, payments
- AdvisoryExpiryPolicy / AutoSettleExpiryPolicy: What a lapsed deadline does
"""

from carefayre.timesheets.expiry import (
    AdvisoryExpiryPolicy,
    AutoSettleExpiryPolicy,
    ExpiryAction,
    ExpiryReport,
    QueryExpiryPolicy,
)
from carefayre.timesheets.models import (
    Payment,
    PaymentStatus,
    ResponseMode,
    Timesheet,
    TimesheetStatus,
)
from carefayre.timesheets.service import TimesheetService

__all__ = [
    # Models
    "Timesheet",
    "Payment",
    "TimesheetStatus",
    "PaymentStatus",
    "ResponseMode",
    # Expiry
    "QueryExpiryPolicy",
    "AdvisoryExpiryPolicy",
    "AutoSettleExpiryPolicy",
    "ExpiryAction",
    "ExpiryReport",
    # Service
    "TimesheetService",
]
