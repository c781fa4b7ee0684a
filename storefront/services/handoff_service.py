"""Hand-off of a just-created booking from checkout to the booking list.

The list endpoint of the rental backend can lag behind booking creation. The
checkout flow (producer) drops the created booking into a single slot per
customer; the next list load (consumer) takes it exactly once and merges it
into what the backend returned. A slot that is never read is harmless: the
backend list catches up and the stale slot is replaced by the next booking.
"""
import json
import logging

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.models.handoff import HandoffBooking
from storefront.schemas.booking import DERIVED_FIELDS, Booking

logger = logging.getLogger(__name__)


def slot_key(customer_id) -> str:
    return f"latest_booking:{customer_id}"


class HandoffStore:
    def __init__(self, db: Session):
        self.db = db

    def put(self, customer_id, booking: Booking) -> None:
        """Write the slot, replacing whatever was there."""
        key = slot_key(customer_id)
        payload = booking.model_dump_json(exclude=DERIVED_FIELDS)
        row = self.db.get(HandoffBooking, key)
        if row:
            row.booking_json = payload
        else:
            self.db.add(HandoffBooking(slot_key=key, booking_json=payload))
        self.db.commit()

    def take(self, customer_id) -> Booking | None:
        """Read and clear the slot in one transaction."""
        key = slot_key(customer_id)
        row = self.db.execute(
            select(HandoffBooking).where(HandoffBooking.slot_key == key).with_for_update()
        ).scalar_one_or_none()
        if not row:
            self.db.rollback()
            return None
        payload = row.booking_json
        self.db.delete(row)
        self.db.commit()
        try:
            return Booking.model_validate(json.loads(payload))
        except (ValueError, ValidationError):
            logger.warning("discarding unreadable handoff booking for %s", key)
            return None

    def peek(self, customer_id) -> Booking | None:
        row = self.db.get(HandoffBooking, slot_key(customer_id))
        if not row:
            return None
        return Booking.model_validate(json.loads(row.booking_json))
