"""
================================================================================
STRIPE SYNC - Customer Record Operations
================================================================================
Idempotent lookup-then-write operations on the customer data table and the
payment link cache table.

Keying:
- customer rows are found by Stripe customer id
- update_* writes go id -> email -> row id -> field, so they need an
  attached email first
- payment link cache rows are keyed by email only
- a checkout that lands before its charge leaves an email-only row; the
  charge claims it rather than creating a second row for the same email
================================================================================
"""

import logging
from typing import Any, Optional

from models.events import UNKNOWN
from storage.naming import FieldNames, ROW_ID_COLUMN
from storage.record_store import RecordStore, RowId

logger = logging.getLogger("stripe_sync.records")


class FieldMissing(Exception):
    """A lookup succeeded but the expected field was absent or mistyped."""

    def __init__(self, field: str, key: str, reason: str = "no matching row"):
        self.field = field
        self.key = key
        self.reason = reason
        super().__init__(f"'{field}' missing for '{key}': {reason}")


def format_total_amount(amount: int) -> float:
    """Convert an integer minor-unit amount (cents) to major units."""
    return amount / 100.0


class CustomerRecords:
    """Customer record operations over a shared RecordStore handle."""

    def __init__(self, store: RecordStore):
        self.store = store

    # =========================================================================
    # CREATION
    # =========================================================================

    async def _claim_email_row(self, customer_id: str, email: Optional[str]) -> bool:
        """Give an email-only row (left by an earlier checkout) to ``customer_id``."""
        if not email or email == UNKNOWN:
            return False

        names = FieldNames.resolve()
        rows = await self.store.find(names.customer_table, names.email, email)
        unclaimed = [row for row in rows if row.get(names.customer_id) is None]
        if not unclaimed or unclaimed[0].get(ROW_ID_COLUMN) is None:
            return False

        await self.store.update(names.customer_table, unclaimed[0][ROW_ID_COLUMN], {
            names.customer_id: customer_id,
        })
        logger.info(f"Claimed customer record for {email}: {customer_id}")
        return True

    async def ensure_customer(self, customer_id: str, email: Optional[str] = None) -> str:
        """
        Create a bare customer row unless one exists for ``customer_id``.
        With ``email``, an unclaimed row for that email is reused instead.
        """
        names = FieldNames.resolve()

        existing = await self.store.find(names.customer_table, names.customer_id, customer_id)
        if existing:
            return customer_id

        if await self._claim_email_row(customer_id, email):
            return customer_id

        await self.store.insert(names.customer_table, {names.customer_id: customer_id})
        logger.info(f"Created customer record: {customer_id}")
        return customer_id

    async def ensure_customer_by_email(self, email: str) -> str:
        """Create a bare customer row keyed only by ``email`` unless one exists."""
        names = FieldNames.resolve()

        existing = await self.store.find(names.customer_table, names.email, email)
        if existing:
            return email

        await self.store.insert(names.customer_table, {names.email: email})
        logger.info(f"Created customer record for email: {email}")
        return email

    async def attach_email(self, customer_id: str, email: str) -> str:
        """Attach ``email`` to the customer row, creating the row if needed."""
        names = FieldNames.resolve()

        rows = await self.store.find(names.customer_table, names.customer_id, customer_id)
        if not rows:
            if await self._claim_email_row(customer_id, email):
                return customer_id
            await self.store.insert(names.customer_table, {
                names.customer_id: customer_id,
                names.email: email,
            })
            return customer_id

        row_id = rows[0].get(ROW_ID_COLUMN)
        if row_id is None:
            raise FieldMissing(ROW_ID_COLUMN, customer_id, "matched row has no row id")

        await self.store.update(names.customer_table, row_id, {
            names.customer_id: customer_id,
            names.email: email,
        })
        return customer_id

    # =========================================================================
    # READS (first matching row only)
    # =========================================================================

    async def _get_field(self, customer_id: str, column: str, expected: tuple) -> Any:
        names = FieldNames.resolve()

        rows = await self.store.find(names.customer_table, names.customer_id, customer_id)
        if not rows:
            raise FieldMissing(column, customer_id)

        value = rows[0].get(column)
        if value is None:
            raise FieldMissing(column, customer_id, "field not set")
        # bool is an int subclass; keep numeric columns from accepting it
        if not isinstance(value, expected) or (isinstance(value, bool) and bool not in expected):
            raise FieldMissing(column, customer_id, f"unexpected type {type(value).__name__}")
        return value

    async def get_email(self, customer_id: str) -> str:
        return await self._get_field(customer_id, FieldNames.resolve().email, (str,))

    async def get_paid(self, customer_id: str) -> bool:
        return await self._get_field(customer_id, FieldNames.resolve().paid, (bool,))

    async def get_email_sent(self, customer_id: str) -> bool:
        return await self._get_field(customer_id, FieldNames.resolve().email_sent, (bool,))

    async def get_name(self, customer_id: str) -> str:
        return await self._get_field(customer_id, FieldNames.resolve().name, (str,))

    async def get_country(self, customer_id: str) -> str:
        return await self._get_field(customer_id, FieldNames.resolve().country, (str,))

    async def get_receipt_url(self, customer_id: str) -> str:
        return await self._get_field(customer_id, FieldNames.resolve().receipt_url, (str,))

    async def get_amount_total(self, customer_id: str) -> float:
        value = await self._get_field(customer_id, FieldNames.resolve().amount_total, (int, float))
        return float(value)

    async def get_end_time(self, customer_id: str) -> int:
        return await self._get_field(customer_id, FieldNames.resolve().end_time, (int,))

    # =========================================================================
    # UPDATES (resolved through the attached email)
    # =========================================================================

    async def _row_id_for_email(self, email: str) -> Optional[RowId]:
        names = FieldNames.resolve()
        rows = await self.store.find(names.customer_table, names.email, email)
        if not rows:
            return None
        return rows[0].get(ROW_ID_COLUMN)

    async def _update_via_email(self, customer_id: str, column: str, value: Any) -> RowId:
        email = await self.get_email(customer_id)

        row_id = await self._row_id_for_email(email)
        if row_id is None:
            raise FieldMissing(ROW_ID_COLUMN, email, "no row for attached email")

        return await self.store.upsert(FieldNames.resolve().customer_table, row_id, {column: value})

    async def update_paid(self, customer_id: str, paid: bool) -> RowId:
        return await self._update_via_email(customer_id, FieldNames.resolve().paid, paid)

    async def update_email_sent(self, customer_id: str, email_sent: bool) -> RowId:
        return await self._update_via_email(customer_id, FieldNames.resolve().email_sent, email_sent)

    async def update_name(self, customer_id: str, name: str) -> RowId:
        return await self._update_via_email(customer_id, FieldNames.resolve().name, name)

    async def update_amount_total(self, customer_id: str, amount_total: float) -> RowId:
        return await self._update_via_email(customer_id, FieldNames.resolve().amount_total, amount_total)

    async def update_country(self, customer_id: str, country: str) -> RowId:
        return await self._update_via_email(customer_id, FieldNames.resolve().country, country)

    async def update_receipt_url(self, customer_id: str, receipt_url: str) -> RowId:
        return await self._update_via_email(customer_id, FieldNames.resolve().receipt_url, receipt_url)

    async def update_end_time(self, customer_id: str, end_time: int) -> RowId:
        return await self._update_via_email(customer_id, FieldNames.resolve().end_time, end_time)

    async def mark_email_sent(self, email: str, sent: bool) -> RowId:
        """Record the outcome of the checkout email on the row owning ``email``."""
        names = FieldNames.resolve()

        row_id = await self._row_id_for_email(email)
        if row_id is None:
            await self.ensure_customer_by_email(email)
            row_id = await self._row_id_for_email(email)

        return await self.store.upsert(names.customer_table, row_id, {names.email_sent: sent})

    # =========================================================================
    # PAYMENT LINK CACHE (keyed by email)
    # =========================================================================

    async def cache_payment_link(self, email: str, payment_link: str) -> RowId:
        """Insert a cache row. Repeated calls create repeated rows."""
        names = FieldNames.resolve()
        return await self.store.insert(names.payment_link_cache_table, {
            names.email: email,
            names.payment_link: payment_link,
        })

    async def get_payment_link(self, email: str) -> str:
        """Most recently cached payment link for ``email``."""
        names = FieldNames.resolve()

        rows = await self.store.find(names.payment_link_cache_table, names.email, email)
        if not rows:
            raise FieldMissing(names.payment_link, email)

        link = rows[-1].get(names.payment_link)
        if not isinstance(link, str):
            raise FieldMissing(names.payment_link, email, "field not set")
        return link

    async def attach_payment_link(self, email: str) -> str:
        """Copy the cached payment link onto the customer row for ``email``."""
        names = FieldNames.resolve()

        link = await self.get_payment_link(email)
        row_id = await self._row_id_for_email(email)
        if row_id is None:
            raise FieldMissing(ROW_ID_COLUMN, email, "no customer row for email")

        await self.store.upsert(names.customer_table, row_id, {names.payment_link: link})
        logger.info(f"Attached payment link to customer record for {email}")
        return link
