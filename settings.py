"""
================================================================================
STRIPE SYNC - Configuration
================================================================================
Environment-driven settings for the webhook service.
A local .env file is loaded first so development setups need no exports.
================================================================================
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


class Config:
    """Configuration from environment variables."""
    # Record store
    SUPABASE_URL = os.getenv("SUPABASE_URL", "")
    SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")

    # Stripe
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_API_KEY = os.getenv("STRIPE_API_KEY", os.getenv("STRIPE_SECRET_KEY", ""))

    # Email (Resend)
    RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
    RESEND_EMAIL = os.getenv("RESEND_EMAIL", "billing@xylex.cloud")
    EMAIL_SUBJECT = os.getenv("EMAIL_SUBJECT", "Welcome to Xylex Enterprise!")
    EMAIL_TEMPLATE_URL = os.getenv("EMAIL_TEMPLATE_URL", "")
    ALLOW_DIRTY_EMAIL = os.getenv("ALLOW_DIRTY_EMAIL", "0") == "1"

    ORGANIZATION_NAME = os.getenv("ORGANIZATION_NAME", "Xylex")

    # Checkout sequencing
    PAYMENT_LINK_ATTACH_DELAY = _env_float("PAYMENT_LINK_ATTACH_DELAY", 5.0)
    PAYMENT_LINK_WAIT_TIMEOUT = _env_float("PAYMENT_LINK_WAIT_TIMEOUT", 30.0)

    # Server
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "4242"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


@dataclass(frozen=True)
class EmailConfig:
    """Outbound email settings for one organization."""
    sender: str
    subject: str
    template_url: str


@dataclass(frozen=True)
class Organization:
    """The merchant whose Stripe account feeds the webhook."""
    name: str
    email_config: EmailConfig

    @classmethod
    def from_config(cls) -> "Organization":
        return cls(
            name=Config.ORGANIZATION_NAME,
            email_config=EmailConfig(
                sender=Config.RESEND_EMAIL,
                subject=Config.EMAIL_SUBJECT,
                template_url=Config.EMAIL_TEMPLATE_URL,
            ),
        )
