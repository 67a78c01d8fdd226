"""
Email dispatch gateway.

Sends branded transactional email through the Resend API. Callers pass a
user id, never an address: the recipient is resolved from the identity
directory. Every failure is raised as DependencyUnavailableError so the
outbox can log it without affecting the transition that queued it.
"""

import html
import logging
from typing import Optional

import httpx

from carefayre.errors import DependencyUnavailableError, NotAuthorizedError

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_FROM_ADDRESS = "Care Fayre <noreply@carefayre.co.uk>"


def build_email_html(
    subject: str,
    body_text: str,
    cta_url: Optional[str] = None,
    cta_text: Optional[str] = None,
    platform_name: str = "Care Fayre",
) -> str:
    """Render the branded HTML wrapper around a plain-text body."""
    subject_html = html.escape(subject)
    body_html = html.escape(body_text).replace("\n", "<br>")
    cta_button = ""
    if cta_url and cta_text:
        cta_button = (
            '<table role="presentation" cellpadding="0" cellspacing="0" style="margin:24px 0;">'
            '<tr><td style="background-color:#1e3a5f;border-radius:6px;">'
            f'<a href="{html.escape(cta_url, quote=True)}" target="_blank" '
            'style="display:inline-block;padding:12px 28px;color:#ffffff;'
            'font-family:Arial,sans-serif;font-size:15px;font-weight:600;text-decoration:none;">'
            f"{html.escape(cta_text)}</a></td></tr></table>"
        )
    return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width,initial-scale=1.0"></head>
<body style="margin:0;padding:0;background-color:#f4f4f5;font-family:Arial,sans-serif;">
  <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="background-color:#f4f4f5;padding:32px 16px;">
    <tr><td align="center">
      <table role="presentation" width="560" cellpadding="0" cellspacing="0" style="background-color:#ffffff;border-radius:8px;">
        <tr><td style="padding:28px 32px 20px 32px;border-bottom:1px solid #e4e4e7;">
          <span style="font-family:Georgia,serif;font-size:22px;font-weight:700;color:#1e3a5f;">{html.escape(platform_name)}</span>
        </td></tr>
        <tr><td style="padding:28px 32px 12px 32px;">
          <h1 style="margin:0 0 16px 0;font-family:Georgia,serif;font-size:20px;color:#18181b;">{subject_html}</h1>
          <p style="margin:0 0 8px 0;font-size:15px;line-height:1.6;color:#3f3f46;">{body_html}</p>
          {cta_button}
        </td></tr>
        <tr><td style="padding:20px 32px 28px 32px;border-top:1px solid #e4e4e7;">
          <p style="margin:0;font-size:12px;color:#a1a1aa;">This is an automated notification from {html.escape(platform_name)}.</p>
        </td></tr>
      </table>
    </td></tr>
  </table>
</body>
</html>"""


class ResendEmailGateway:
    """Email gateway backed by Resend."""

    def __init__(
        self,
        api_key: str,
        identity,
        from_address: str = DEFAULT_FROM_ADDRESS,
        api_url: str = RESEND_API_URL,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        if not api_key:
            raise ValueError("Resend API key is required")
        self.api_key = api_key
        self.identity = identity
        self.from_address = from_address
        self.api_url = api_url
        self.timeout = timeout
        self._client = client

    def _post(self, payload: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self._client is not None:
            return self._client.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(self.api_url, json=payload, headers=headers)

    def send_email(
        self,
        user_id: str,
        subject: str,
        body_text: str,
        cta_url: Optional[str] = None,
        cta_text: Optional[str] = None,
        *,
        caller_id: Optional[str],
    ) -> str:
        """Send an email to a user. Returns the provider message id.

        Raises:
            NotAuthorizedError: If there is no authenticated caller
            ValueError: If a required field is missing
            DependencyUnavailableError: If the recipient has no email or
                the provider rejects the request
        """
        if not caller_id:
            raise NotAuthorizedError("Authentication required to send email")
        if not user_id or not subject or not body_text:
            raise ValueError("Missing required fields: user_id, subject, body_text")

        recipient = self.identity.get_email(user_id)
        if not recipient:
            logger.error(f"send_email: no email address for user {user_id}")
            raise DependencyUnavailableError("Recipient email not found")

        payload = {
            "from": self.from_address,
            "to": [recipient],
            "subject": subject,
            "html": build_email_html(subject, body_text, cta_url, cta_text),
        }
        try:
            response = self._post(payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"send_email: Resend request failed for user {user_id}: {e}")
            raise DependencyUnavailableError("Email provider unavailable") from e

        try:
            message_id = (response.json() or {}).get("id", "")
        except ValueError:
            message_id = ""
        logger.info(f"send_email: sent '{subject}' to user {user_id} (caller={caller_id})")
        return message_id


class RecordingEmailGateway:
    """Gateway that records messages instead of sending them.

    Used for local development and tests; applies the same caller and
    recipient checks as the real gateway.
    """

    def __init__(self, identity=None):
        self.identity = identity
        self.sent = []

    def send_email(
        self,
        user_id: str,
        subject: str,
        body_text: str,
        cta_url: Optional[str] = None,
        cta_text: Optional[str] = None,
        *,
        caller_id: Optional[str],
    ) -> str:
        if not caller_id:
            raise NotAuthorizedError("Authentication required to send email")
        if self.identity is not None and not self.identity.get_email(user_id):
            raise DependencyUnavailableError("Recipient email not found")
        self.sent.append(
            {
                "user_id": user_id,
                "subject": subject,
                "body_text": body_text,
                "cta_url": cta_url,
                "cta_text": cta_text,
                "caller_id": caller_id,
            }
        )
        return f"recorded-{len(self.sent)}"
