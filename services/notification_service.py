"""
================================================================================
STRIPE SYNC - Notification Service
================================================================================
Outbound email for checkout confirmations.
Sends through the Resend HTTP API, with HTML templates fetched from a URL
and filled with {{Placeholder}} values.
================================================================================
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from prometheus_client import Counter

logger = logging.getLogger("stripe_sync.notifications")

RESEND_API_URL = "https://api.resend.com/emails"

EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")
PLACEHOLDER_REGEX = re.compile(r"\{\{\s*(\w+)\s*\}\}")

EMAILS_SENT = Counter(
    'stripe_sync_emails_total',
    'Outbound email attempts',
    ['status']
)


class EmailSendError(Exception):
    """Outbound email could not be prepared or delivered."""


@dataclass
class EmailMessage:
    """A single outbound email."""
    to: List[str]
    subject: str
    html: str
    attachments: List[Dict[str, Any]] = field(default_factory=list)

    def to_payload(self, from_email: str) -> Dict[str, Any]:
        payload = {
            "from": from_email,
            "to": self.to,
            "subject": self.subject,
            "html": self.html,
        }
        if self.attachments:
            payload["attachments"] = self.attachments
        return payload


def fill_template(html: str, variables: Dict[str, Any]) -> str:
    """Replace {{Key}} placeholders; unknown placeholders are left untouched."""
    def _replace(match: "re.Match") -> str:
        key = match.group(1)
        if key in variables and variables[key] is not None:
            return str(variables[key])
        return match.group(0)

    return PLACEHOLDER_REGEX.sub(_replace, html)


def verify_email(address: str) -> bool:
    """Whether ``address`` can be a valid email address."""
    return bool(EMAIL_REGEX.match(address or ""))


class NotificationService:
    """
    Email capability shared by all webhook deliveries.
    One httpx client is reused for template downloads and API calls.
    """

    def __init__(
        self,
        resend_api_key: Optional[str] = None,
        from_email: str = "billing@xylex.cloud",
        allow_dirty_email: bool = False,
        client: Optional[httpx.AsyncClient] = None,
        api_url: str = RESEND_API_URL,
    ):
        self.resend_api_key = resend_api_key
        self.from_email = from_email
        self.allow_dirty_email = allow_dirty_email
        self.api_url = api_url
        self.client = client or httpx.AsyncClient(timeout=30.0)

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    def authenticate(self):
        """Fail fast when the email provider is not configured."""
        if not self.resend_api_key:
            raise EmailSendError("Resend API key not configured")

    async def download_template(self, template_url: str) -> str:
        """Fetch the HTML email template."""
        if not template_url:
            raise EmailSendError("Email template URL not configured")

        try:
            response = await self.client.get(template_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise EmailSendError(f"Template download failed: {e}") from e

        logger.info(f"Email template downloaded ({len(response.text)} chars)")
        return response.text

    async def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        attachments: Optional[List[Dict[str, Any]]] = None,
        from_email: Optional[str] = None,
    ) -> str:
        """
        Send one email and return the provider's message id.
        ``from_email`` overrides the service-wide sender for this message.
        """
        self.authenticate()

        if not self.allow_dirty_email and not verify_email(to):
            EMAILS_SENT.labels(status="rejected").inc()
            raise EmailSendError(f"Invalid recipient address: {to!r}")

        message = EmailMessage(to=[to], subject=subject, html=html, attachments=attachments or [])

        try:
            response = await self.client.post(
                self.api_url,
                headers={
                    "Authorization": f"Bearer {self.resend_api_key}",
                    "Content-Type": "application/json",
                },
                json=message.to_payload(from_email or self.from_email),
            )
        except httpx.HTTPError as e:
            EMAILS_SENT.labels(status="failed").inc()
            raise EmailSendError(f"Resend request failed: {e}") from e

        if response.status_code not in (200, 201, 202):
            EMAILS_SENT.labels(status="failed").inc()
            raise EmailSendError(f"Resend error: {response.status_code} - {response.text}")

        try:
            message_id = response.json().get("id", "")
        except ValueError:
            message_id = ""
        EMAILS_SENT.labels(status="sent").inc()
        logger.info(f"Email sent to {to}: {message_id}")
        return message_id

    async def send_template_email(
        self,
        to: str,
        subject: str,
        template_url: str,
        variables: Dict[str, Any],
        from_email: Optional[str] = None,
    ) -> str:
        """Authenticate, download and fill the template, then send it."""
        self.authenticate()
        template = await self.download_template(template_url)

        html = fill_template(template, {
            "Email": to,
            "PaymentDate": datetime.utcnow().strftime("%B %d, %Y"),
            **variables,
        })
        return await self.send_email(to, subject, html, from_email=from_email)
