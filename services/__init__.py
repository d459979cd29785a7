from .customer_records import CustomerRecords, FieldMissing, format_total_amount
from .event_router import EventDispatcher
from .notification_service import NotificationService, EmailSendError
from .scheduler import BackgroundScheduler

__all__ = [
    "CustomerRecords",
    "FieldMissing",
    "format_total_amount",
    "EventDispatcher",
    "NotificationService",
    "EmailSendError",
    "BackgroundScheduler",
]
