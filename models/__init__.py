from .events import (
    EventEnvelope,
    EventKind,
    EventOutcome,
    ChargeSucceeded,
    CheckoutSessionCompleted,
    ClassifiedOnly,
    GHOST_KINDS,
    classify,
)

__all__ = [
    "EventEnvelope",
    "EventKind",
    "EventOutcome",
    "ChargeSucceeded",
    "CheckoutSessionCompleted",
    "ClassifiedOnly",
    "GHOST_KINDS",
    "classify",
]
