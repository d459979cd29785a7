"""
================================================================================
STRIPE SYNC - Event Classifier & Dispatcher
================================================================================
Classifies a webhook envelope and runs the side effects for its kind.

charge.succeeded
    ensure customer -> attach email -> name -> amount -> country
    -> receipt url -> paid. Strictly sequential: every update after the
    email is resolved through that email. A failure stops the sequence and
    leaves the record partially updated.

checkout.session.completed
    cache payment link -> schedule delayed attach (background, failures
    swallowed) -> wait for the attach to finish (bounded) -> send the
    template email -> write email_sent true/false.

Everything else is classified without side effects.
================================================================================
"""

import logging
import time
from typing import Optional

from prometheus_client import Counter, Histogram

from models.events import (
    ChargeSucceeded,
    CheckoutSessionCompleted,
    ClassifiedOnly,
    EventEnvelope,
    EventKind,
    EventOutcome,
    classify,
)
from services.customer_records import CustomerRecords, format_total_amount
from services.notification_service import EmailSendError, NotificationService
from services.scheduler import BackgroundScheduler
from settings import Organization

logger = logging.getLogger("stripe_sync.router")


# =============================================================================
# PROMETHEUS METRICS
# =============================================================================

WEBHOOK_EVENTS = Counter(
    'stripe_sync_webhook_events_total',
    'Webhook events dispatched',
    ['kind', 'status']
)

WEBHOOK_LATENCY = Histogram(
    'stripe_sync_webhook_latency_seconds',
    'Webhook dispatch latency',
    ['kind'],
    buckets=[0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0]
)


class EventDispatcher:
    """Stateless per-event pipeline over injected, shared handles."""

    def __init__(
        self,
        records: CustomerRecords,
        notifier: NotificationService,
        scheduler: BackgroundScheduler,
        organization: Organization,
        link_attach_delay: float = 5.0,
        link_wait_timeout: Optional[float] = 30.0,
    ):
        self.records = records
        self.notifier = notifier
        self.scheduler = scheduler
        self.organization = organization
        self.link_attach_delay = link_attach_delay
        self.link_wait_timeout = link_wait_timeout

    async def dispatch(self, envelope: EventEnvelope) -> EventOutcome:
        """Classify ``envelope`` and perform its side effects."""
        start_time = time.time()
        event = classify(envelope)
        outcome = EventOutcome(kind=event.kind)

        logger.info(f"Dispatching {event.kind.value} (raw type: {envelope.kind})")

        try:
            if isinstance(event, ChargeSucceeded):
                await self.handle_charge_succeeded(event)
            elif isinstance(event, CheckoutSessionCompleted):
                await self.handle_checkout_completed(event, outcome)
            elif isinstance(event, ClassifiedOnly):
                logger.debug(f"No side effects for {event.kind.value}")
        except Exception as e:
            outcome.error = f"{type(e).__name__}: {e}"
            logger.error(f"Failed to process {event.kind.value}: {outcome.error}")

        WEBHOOK_EVENTS.labels(
            kind=event.kind.value,
            status="succeeded" if outcome.success else "failed"
        ).inc()
        WEBHOOK_LATENCY.labels(kind=event.kind.value).observe(time.time() - start_time)
        return outcome

    # =========================================================================
    # charge.succeeded
    # =========================================================================

    async def handle_charge_succeeded(self, event: ChargeSucceeded):
        customer_id = event.customer_id

        await self.records.ensure_customer(customer_id, event.email)
        await self.records.attach_email(customer_id, event.email)
        await self.records.update_name(customer_id, event.name)
        await self.records.update_amount_total(customer_id, format_total_amount(event.amount_captured))
        await self.records.update_country(customer_id, event.country)
        await self.records.update_receipt_url(customer_id, event.receipt_url)
        await self.records.update_paid(customer_id, event.paid)

        logger.info(f"Customer {customer_id} synced (paid={event.paid})")

    # =========================================================================
    # checkout.session.completed
    # =========================================================================

    async def handle_checkout_completed(self, event: CheckoutSessionCompleted, outcome: EventOutcome):
        email = event.email

        await self.records.cache_payment_link(email, event.payment_link)

        attach_task = self.scheduler.schedule(
            self.link_attach_delay,
            lambda: self.records.attach_payment_link(email),
            name="attach_payment_link",
        )

        # The email must not go out before the link is attached (or given up on)
        outcome.payment_link_attached = await self.scheduler.wait(attach_task, self.link_wait_timeout)
        if not outcome.payment_link_attached:
            logger.warning(f"Payment link not attached for {email}; sending email anyway")

        outcome.email_sent = await self.send_checkout_email(email, event.payment_link)
        await self.records.mark_email_sent(email, outcome.email_sent)

    async def send_checkout_email(self, email: str, payment_link: str) -> bool:
        email_config = self.organization.email_config
        try:
            message_id = await self.notifier.send_template_email(
                to=email,
                subject=email_config.subject,
                template_url=email_config.template_url,
                variables={
                    "PaymentLink": payment_link,
                    "OrganizationName": self.organization.name,
                },
                from_email=email_config.sender,
            )
        except EmailSendError as e:
            logger.error(f"Checkout email to {email} failed: {e}")
            return False

        logger.info(f"Checkout email to {email} sent: {message_id}")
        return True
