"""
================================================================================
STRIPE SYNC - Event Models
================================================================================
Webhook envelope, the closed set of handled event kinds, one variant per
kind carrying only the fields that kind needs, and the dispatch outcome.

Field extraction never fails: absent or mistyped values fall back to
"unknown" for strings and 0 for amounts.
================================================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

UNKNOWN = "unknown"


# =============================================================================
# ENUMS
# =============================================================================

class EventKind(str, Enum):
    """Stripe event types the pipeline recognizes."""
    PAYMENT_INTENT_CREATED = "payment_intent.created"
    PAYMENT_INTENT_PAYMENT_FAILED = "payment_intent.payment_failed"
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    CHARGE_SUCCEEDED = "charge.succeeded"
    CHARGE_FAILED = "charge.failed"
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    UNKNOWN = "unknown"

    @classmethod
    def from_type(cls, event_type: Any) -> "EventKind":
        try:
            return cls(event_type)
        except ValueError:
            return cls.UNKNOWN


# Classified but intentionally produce no side effects
GHOST_KINDS = frozenset({
    EventKind.PAYMENT_INTENT_CREATED,
    EventKind.PAYMENT_INTENT_PAYMENT_FAILED,
    EventKind.PAYMENT_INTENT_SUCCEEDED,
    EventKind.CHARGE_FAILED,
    EventKind.UNKNOWN,
})


# =============================================================================
# ENVELOPE
# =============================================================================

@dataclass(frozen=True)
class EventEnvelope:
    """A received webhook: its type tag and the event's data object."""
    kind: str
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        payload = self.payload if isinstance(self.payload, Mapping) else {}
        object.__setattr__(self, "payload", MappingProxyType(dict(payload)))

    @classmethod
    def from_webhook(cls, event: Mapping[str, Any]) -> "EventEnvelope":
        """Build from a parsed Stripe event (``type`` + ``data.object``)."""
        if not isinstance(event, Mapping):
            return cls(kind=UNKNOWN)

        kind = event.get("type")
        obj = dig(event, "data", "object", default=None)
        return cls(
            kind=kind if isinstance(kind, str) else UNKNOWN,
            payload=obj if isinstance(obj, Mapping) else {},
        )


def dig(obj: Any, *path: str, default: Any = UNKNOWN) -> Any:
    """Walk nested mappings, returning ``default`` at the first gap."""
    current = obj
    for key in path:
        if not isinstance(current, Mapping) or key not in current:
            return default
        current = current[key]
    return default if current is None else current


def dig_str(obj: Any, *path: str) -> str:
    value = dig(obj, *path)
    return value if isinstance(value, str) else UNKNOWN


def dig_int(obj: Any, *path: str) -> int:
    value = dig(obj, *path, default=0)
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return value


# =============================================================================
# VARIANTS
# =============================================================================

@dataclass(frozen=True)
class ClassifiedOnly:
    """An event that is recognized (or not) but has no side effects."""
    kind: EventKind


@dataclass(frozen=True)
class ChargeSucceeded:
    """Fields of a ``charge.succeeded`` event."""
    customer_id: str
    email: str
    name: str
    amount_captured: int
    country: str
    receipt_url: str
    status: str

    kind = EventKind.CHARGE_SUCCEEDED

    @property
    def paid(self) -> bool:
        return self.status == "succeeded"

    @classmethod
    def from_payload(cls, obj: Mapping[str, Any]) -> "ChargeSucceeded":
        return cls(
            customer_id=dig_str(obj, "id"),
            email=dig_str(obj, "billing_details", "email"),
            name=dig_str(obj, "billing_details", "name"),
            amount_captured=dig_int(obj, "amount_captured"),
            country=dig_str(obj, "billing_details", "address", "country"),
            receipt_url=dig_str(obj, "receipt_url"),
            status=dig_str(obj, "status"),
        )


@dataclass(frozen=True)
class CheckoutSessionCompleted:
    """Fields of a ``checkout.session.completed`` event."""
    payment_link: str
    email: str

    kind = EventKind.CHECKOUT_SESSION_COMPLETED

    @classmethod
    def from_payload(cls, obj: Mapping[str, Any]) -> "CheckoutSessionCompleted":
        return cls(
            payment_link=dig_str(obj, "payment_link"),
            email=dig_str(obj, "customer_details", "email"),
        )


ClassifiedEvent = Union[ClassifiedOnly, ChargeSucceeded, CheckoutSessionCompleted]


def classify(envelope: EventEnvelope) -> ClassifiedEvent:
    """Map an envelope to its variant. Never raises."""
    kind = EventKind.from_type(envelope.kind)

    if kind == EventKind.CHARGE_SUCCEEDED:
        return ChargeSucceeded.from_payload(envelope.payload)
    if kind == EventKind.CHECKOUT_SESSION_COMPLETED:
        return CheckoutSessionCompleted.from_payload(envelope.payload)
    return ClassifiedOnly(kind)


# =============================================================================
# OUTCOME
# =============================================================================

@dataclass
class EventOutcome:
    """What the pipeline did with one event."""
    kind: EventKind
    error: Optional[str] = None
    email_sent: Optional[bool] = None
    payment_link_attached: Optional[bool] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "success": self.success,
            "error": self.error,
            "email_sent": self.email_sent,
            "payment_link_attached": self.payment_link_attached,
        }
