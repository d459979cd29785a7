"""
Table and column naming for the customer record store.

Every logical name can be remapped to a physical table/column through an
``OVERWRITE_*`` environment variable, so the service can run against an
existing Supabase schema. Names are resolved on every call, which lets an
operator change an override without restarting the process.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict


class LogicalName(str, Enum):
    """Stable names used in code, independent of the physical schema."""
    CUSTOMER_TABLE = "customer_table"
    PAYMENT_LINK_CACHE_TABLE = "payment_link_cache_table"
    CUSTOMER_ID = "customer_id"
    EMAIL = "email"
    PAID = "paid"
    EMAIL_SENT = "email_sent"
    NAME = "name"
    RECEIPT_URL = "receipt_url"
    COUNTRY = "country"
    AMOUNT_TOTAL = "amount_total"
    END_TIME = "end_time"
    START_TIME = "start_time"
    PAYMENT_LINK = "payment_link"


# Primary key column of every Supabase table. Not overridable.
ROW_ID_COLUMN = "id"

# logical name -> (override variable, default physical name)
NAME_OVERRIDES: Dict[LogicalName, tuple] = {
    LogicalName.CUSTOMER_TABLE: ("OVERWRITE_STRIPE_CUSTOMER_TABLE_NAME", "stripe_customer_data"),
    LogicalName.PAYMENT_LINK_CACHE_TABLE: ("OVERWRITE_STRIPE_PLINK_CACHE_TABLE_NAME", "stripe_plink_cache"),
    LogicalName.EMAIL: ("OVERWRITE_STRIPE_EMAIL_COLUMN_NAME", "email"),
    LogicalName.CUSTOMER_ID: ("OVERWRITE_STRIPE_CUSTOMER_ID_COLUMN_NAME", "customer_id"),
    LogicalName.PAID: ("OVERWRITE_STRIPE_CUSTOMER_PAID_COLUMN_NAME", "paid"),
    LogicalName.EMAIL_SENT: ("OVERWRITE_STRIPE_CUSTOMER_EMAIL_SENT_COLUMN_NAME", "email_sent"),
    LogicalName.END_TIME: ("OVERWRITE_STRIPE_CUSTOMER_END_TIME_COLUMN_NAME", "end_time"),
    LogicalName.START_TIME: ("OVERWRITE_STRIPE_CUSTOMER_START_TIME_COLUMN_NAME", "start_time"),
    LogicalName.NAME: ("OVERWRITE_STRIPE_CUSTOMER_NAME_COLUMN_NAME", "name"),
    LogicalName.RECEIPT_URL: ("OVERWRITE_STRIPE_CUSTOMER_RECEIPT_URL_COLUMN_NAME", "receipt_url"),
    LogicalName.COUNTRY: ("OVERWRITE_STRIPE_CUSTOMER_COUNTRY_COLUMN_NAME", "country"),
    LogicalName.AMOUNT_TOTAL: ("OVERWRITE_STRIPE_CUSTOMER_AMOUNT_TOTAL_COLUMN_NAME", "amount_total"),
    LogicalName.PAYMENT_LINK: ("OVERWRITE_STRIPE_CUSTOMER_PAYMENT_LINK_COLUMN_NAME", "payment_link"),
}


def override_variable(logical: LogicalName) -> str:
    """Name of the environment variable that remaps ``logical``."""
    return NAME_OVERRIDES[LogicalName(logical)][0]


def resolve(logical: LogicalName) -> str:
    """Resolve a logical name to its physical table/column name.

    Unset or empty overrides fall back to the default; this never raises
    for a known logical name.
    """
    env_var, default = NAME_OVERRIDES[LogicalName(logical)]
    return os.getenv(env_var) or default


@dataclass(frozen=True)
class FieldNames:
    """Snapshot of every resolved name, taken once per store operation."""
    customer_table: str
    payment_link_cache_table: str
    customer_id: str
    email: str
    paid: str
    email_sent: str
    name: str
    receipt_url: str
    country: str
    amount_total: str
    end_time: str
    start_time: str
    payment_link: str

    @classmethod
    def resolve(cls) -> "FieldNames":
        return cls(**{logical.value: resolve(logical) for logical in LogicalName})

    def to_dict(self) -> Dict[str, str]:
        return {logical.value: getattr(self, logical.value) for logical in LogicalName}
