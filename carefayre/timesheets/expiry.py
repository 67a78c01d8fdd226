"""
Policies for overdue timesheet queries.

A queried or resubmitted timesheet carries a response deadline. The sweep in
``TimesheetService.expire_overdue_queries`` finds the ones whose deadline
has passed and asks a policy what to do with each. The policy only decides;
the service applies the decision inside its own transaction.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Protocol

from carefayre.timesheets.models import Timesheet, TimesheetStatus


class ExpiryAction(str, Enum):
    NONE = "none"
    ADOPT_SUGGESTED = "adopt_suggested"
    APPROVE = "approve"


class QueryExpiryPolicy(Protocol):
    """Decide what happens to a timesheet whose response deadline lapsed."""

    def decide(self, timesheet: Timesheet) -> ExpiryAction: ...


class AdvisoryExpiryPolicy:
    """The deadline is a display countdown only. Nothing changes."""

    def decide(self, timesheet: Timesheet) -> ExpiryAction:
        return ExpiryAction.NONE


class AutoSettleExpiryPolicy:
    """Enforce the deadline.

    An unanswered query adopts the customer's suggested hours, when they
    gave any, and goes back to the customer as a resubmission. An
    unanswered resubmission is approved as it stands.
    """

    def decide(self, timesheet: Timesheet) -> ExpiryAction:
        if timesheet.status == TimesheetStatus.QUERIED.value:
            if timesheet.suggested_hours is None:
                return ExpiryAction.NONE
            return ExpiryAction.ADOPT_SUGGESTED
        if timesheet.status == TimesheetStatus.RESUBMITTED.value:
            return ExpiryAction.APPROVE
        return ExpiryAction.NONE


@dataclass
class ExpiryReport:
    """Outcome of one sweep."""

    overdue: List[str] = field(default_factory=list)
    actions: Dict[str, str] = field(default_factory=dict)
    skipped: Dict[str, str] = field(default_factory=dict)

    @property
    def changed(self) -> List[str]:
        return [ts_id for ts_id, action in self.actions.items() if action != ExpiryAction.NONE.value]

    def to_dict(self) -> dict:
        return {
            "overdue": list(self.overdue),
            "actions": dict(self.actions),
            "skipped": dict(self.skipped),
            "changed": self.changed,
        }
