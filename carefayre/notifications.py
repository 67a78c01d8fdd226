"""
In-app notifications and the post-commit outbox.

Services never notify from inside a transaction. They queue messages on an
``Outbox`` while the transaction runs and hand it to ``Dispatcher`` after
commit; a failed delivery is logged and dropped, never raised.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from carefayre.errors import MarketplaceError, NotAuthorizedError, NotFoundError
from carefayre.utils import iso, new_id, parse_datetime, utc_now

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    BID_RECEIVED = "bid_received"
    BID_ACCEPTED = "bid_accepted"
    BID_REJECTED = "bid_rejected"
    REQUEST_CANCELLED = "request_cancelled"
    AGREEMENT_SIGNED = "agreement_signed"
    ASSESSMENT_PENDING = "assessment_pending"
    ASSESSMENT_COMPLETE = "assessment_complete"
    START_DATE = "start_date"
    CARE_CONFIRMED = "care_confirmed"
    CARE_DECLINED = "care_declined"
    JOB_CANCELLED = "job_cancelled"
    JOB_PAUSED = "job_paused"
    JOB_RESUMED = "job_resumed"
    JOB_COMPLETED = "job_completed"
    JOB_DISPUTED = "job_disputed"
    TIMESHEET_SUBMITTED = "timesheet_submitted"
    TIMESHEET_APPROVED = "timesheet_approved"
    TIMESHEET_QUERIED = "timesheet_queried"
    TIMESHEET_RESPONDED = "timesheet_responded"
    TIMESHEET_ESCALATED = "timesheet_escalated"
    PAYMENT_UPDATED = "payment_updated"


@dataclass
class Notification:
    """A message shown in a user's notification list."""

    id: str
    recipient_id: str
    type: str
    message: str
    related_job_id: Optional[str] = None
    related_request_id: Optional[str] = None
    is_read: bool = False
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.type, NotificationType):
            self.type = self.type.value
        if not self.message:
            raise ValueError("Notification message is required")
        if self.related_job_id and self.related_request_id:
            raise ValueError("A notification relates to a job or a request, not both")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "type": self.type,
            "message": self.message,
            "related_job_id": self.related_job_id,
            "related_request_id": self.related_request_id,
            "is_read": self.is_read,
            "created_at": iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Notification":
        return cls(
            id=data["id"],
            recipient_id=data["recipient_id"],
            type=data["type"],
            message=data["message"],
            related_job_id=data.get("related_job_id"),
            related_request_id=data.get("related_request_id"),
            is_read=bool(data.get("is_read", False)),
            created_at=parse_datetime(data.get("created_at")),
        )


class NotificationService:
    """Notification sink plus recipient-side read marking."""

    def __init__(self, storage, clock=None):
        self.storage = storage
        self._now = clock or utc_now

    def notify(
        self,
        recipient_id: str,
        type: str,
        message: str,
        related_job_id: Optional[str] = None,
        related_request_id: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            id=new_id(),
            recipient_id=recipient_id,
            type=type,
            message=message,
            related_job_id=related_job_id,
            related_request_id=related_request_id,
            created_at=self._now(),
        )
        self.storage.save_notification(notification)
        return notification

    def list_for(self, recipient_id: str, unread_only: bool = False) -> List[Notification]:
        """Newest first."""
        return self.storage.list_notifications(recipient_id, unread_only=unread_only)

    def mark_read(self, notification_id: str, actor_id: str) -> Notification:
        notification = self.storage.get_notification(notification_id)
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        if notification.recipient_id != actor_id:
            raise NotAuthorizedError("You can only mark your own notifications as read")
        if not notification.is_read:
            notification.is_read = True
            self.storage.save_notification(notification)
        return notification

    def mark_all_read(self, actor_id: str) -> int:
        with self.storage.transaction():
            unread = self.storage.list_notifications(actor_id, unread_only=True)
            for notification in unread:
                notification.is_read = True
                self.storage.save_notification(notification)
        return len(unread)


@dataclass
class PendingNotification:
    recipient_id: str
    type: str
    message: str
    related_job_id: Optional[str] = None
    related_request_id: Optional[str] = None


@dataclass
class PendingEmail:
    user_id: str
    subject: str
    body_text: str
    cta_url: Optional[str] = None
    cta_text: Optional[str] = None


@dataclass
class Outbox:
    """Messages queued during a transaction, delivered after commit."""

    notifications: List[PendingNotification] = field(default_factory=list)
    emails: List[PendingEmail] = field(default_factory=list)

    def notify(
        self,
        recipient_id: str,
        type: NotificationType,
        message: str,
        related_job_id: Optional[str] = None,
        related_request_id: Optional[str] = None,
    ) -> None:
        self.notifications.append(
            PendingNotification(
                recipient_id=recipient_id,
                type=NotificationType(type).value,
                message=message,
                related_job_id=related_job_id,
                related_request_id=related_request_id,
            )
        )

    def email(
        self,
        user_id: str,
        subject: str,
        body_text: str,
        cta_url: Optional[str] = None,
        cta_text: Optional[str] = None,
    ) -> None:
        self.emails.append(PendingEmail(user_id, subject, body_text, cta_url, cta_text))

    def extend(self, other: "Outbox") -> None:
        self.notifications.extend(other.notifications)
        self.emails.extend(other.emails)

    def __len__(self) -> int:
        return len(self.notifications) + len(self.emails)


class Dispatcher:
    """Deliver an outbox. Fire-and-forget: failures are logged, not raised."""

    def __init__(self, notifications: NotificationService, email=None):
        self.notifications = notifications
        self.email = email

    def dispatch(self, outbox: Outbox, caller_id: Optional[str]) -> int:
        """Deliver everything queued. Returns the number of messages delivered."""
        delivered = 0
        for pending in outbox.notifications:
            try:
                self.notifications.notify(
                    pending.recipient_id,
                    pending.type,
                    pending.message,
                    related_job_id=pending.related_job_id,
                    related_request_id=pending.related_request_id,
                )
                delivered += 1
            except Exception as e:
                logger.warning(
                    f"Notification {pending.type} to {pending.recipient_id} failed: {e}"
                )

        if self.email is None:
            if outbox.emails:
                logger.debug(f"No email gateway configured; dropping {len(outbox.emails)} emails")
            return delivered

        for pending in outbox.emails:
            try:
                self.email.send_email(
                    pending.user_id,
                    pending.subject,
                    pending.body_text,
                    pending.cta_url,
                    pending.cta_text,
                    caller_id=caller_id,
                )
                delivered += 1
            except (MarketplaceError, ValueError) as e:
                logger.warning(f"Email '{pending.subject}' to {pending.user_id} failed: {e}")
            except Exception:
                logger.exception(f"Unexpected error emailing {pending.user_id}")
        return delivered
