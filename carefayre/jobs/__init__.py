"""Job lifecycle for Care Fayre.

Models:
- Job: The care arrangement created when a bid is accepted
- JobStatus: Job lifecycle status
- JobStateTransition: Audit log entry for state changes

Service:
- JobService: Assessment, confirmation, cancellation, pause and completion
"""

from carefayre.jobs.models import (
    PRE_CARE_STATUSES,
    TERMINAL_JOB_STATUSES,
    VALID_JOB_TRANSITIONS,
    Job,
    JobStateTransition,
    JobStatus,
)
from carefayre.jobs.service import JobService

__all__ = [
    # Models
    "Job",
    "JobStatus",
    "JobStateTransition",
    "VALID_JOB_TRANSITIONS",
    "TERMINAL_JOB_STATUSES",
    "PRE_CARE_STATUSES",
    # Service
    "JobService",
]
