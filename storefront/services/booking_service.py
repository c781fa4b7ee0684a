from __future__ import annotations

import logging
from typing import Callable

from pydantic import ValidationError
from sqlalchemy.orm import Session

from storefront.core.errors import BackendContractError, CancellationNotPermitted, InvalidTransition
from storefront.schemas.booking import Booking, BookingStatus
from storefront.schemas.checkout import BookingCreateRequest
from storefront.services.audit_service import log_audit
from storefront.services.busy_guard import BusyGuard, busy_guard
from storefront.services.handoff_service import HandoffStore
from storefront.services.rental_backend import RentalBackendClient

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.ACTIVE, BookingStatus.CANCELLED},
    BookingStatus.ACTIVE: {BookingStatus.COMPLETED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def can_cancel(status: BookingStatus) -> bool:
    return can_transition(status, BookingStatus.CANCELLED)


def validate_transition(current: BookingStatus, target: BookingStatus) -> None:
    if can_transition(current, target):
        return
    if target == BookingStatus.CANCELLED:
        raise CancellationNotPermitted(current, target)
    raise InvalidTransition(current, target)


def as_booking(raw) -> Booking:
    """Parse a booking returned by the backend."""
    if not isinstance(raw, dict):
        raise BackendContractError("Unexpected booking response from server", payload={"raw": raw})
    try:
        return Booking.model_validate(raw)
    except ValidationError as e:
        logger.error("unreadable booking from backend: %s", e.errors()[:1])
        raise BackendContractError("Unexpected booking response from server", payload=raw) from e


def create_guard_key(request: BookingCreateRequest, customer_id: int | None) -> str:
    if customer_id is not None:
        return f"create:{customer_id}"
    # guests have no identity; one key per vehicle and trip window
    return f"create:guest:{request.vehicleId}:{request.startDate}:{request.endDate}"


def merge_handoff(items: list[Booking], page: int, handoff: Booking | None) -> tuple[list[Booking], bool]:
    """Splice the handed-off booking in front of page one unless the backend already lists it.

    Returns the merged list and whether anything was added.
    """
    if handoff is None or page != 0:
        return items, False
    if any(b.same_as(handoff) for b in items):
        return items, False
    return [handoff, *items], True


class BookingLifecycleManager:
    def __init__(self, db: Session, backend: RentalBackendClient, guard: BusyGuard = busy_guard):
        self.db = db
        self.backend = backend
        self.guard = guard
        self.handoff = HandoffStore(db)

    def create(self, request: BookingCreateRequest, customer_id: int | None) -> tuple[Booking, dict]:
        """Create the booking and hand it to the list view. Returns (booking, raw backend response)."""
        with self.guard.hold(create_guard_key(request, customer_id)):
            raw = self.backend.create_booking(request.model_dump())
        booking = as_booking(raw)
        if booking.customerId is None and customer_id is not None:
            booking.customerId = customer_id
        if customer_id is not None:
            self.handoff.put(customer_id, booking)
        log_audit(self.db, actor=f"customer:{customer_id}", action="booking_created", entity_type="booking",
                  entity_id=booking.bookingId or booking.id,
                  details={"finalAmount": booking.finalAmount, "paymentType": booking.paymentType})
        self.db.commit()
        logger.info("booking %s created for customer %s", booking.bookingId or booking.id, customer_id)
        return booking, raw

    def get(self, booking_id: int) -> Booking:
        return as_booking(self.backend.get_booking(booking_id))

    def cancel(self, booking_id: int, actor: str = "USER") -> Booking:
        """Ask the backend to cancel; only its answer marks the booking cancelled."""
        return self._transition(
            booking_id, BookingStatus.CANCELLED,
            lambda: self.backend.cancel_booking(booking_id, cancelled_by=actor),
            action="booking_cancelled", actor=actor,
        )

    def accept(self, booking_id: int, actor: str = "ADMIN") -> Booking:
        return self._transition(booking_id, BookingStatus.CONFIRMED,
                                lambda: self.backend.accept_booking(booking_id),
                                action="booking_accepted", actor=actor)

    def complete(self, booking_id: int, actor: str = "ADMIN") -> Booking:
        return self._transition(booking_id, BookingStatus.COMPLETED,
                                lambda: self.backend.complete_booking(booking_id),
                                action="booking_completed", actor=actor)

    def _transition(self, booking_id: int, target: BookingStatus, call: Callable[[], dict], *,
                    action: str, actor: str) -> Booking:
        with self.guard.hold(f"booking:{booking_id}"):
            current = self.get(booking_id)
            validate_transition(current.bookingStatus, target)
            updated = as_booking(call())
        log_audit(self.db, actor=actor, action=action, entity_type="booking",
                  entity_id=updated.bookingId or booking_id,
                  details={"from": current.bookingStatus.name, "to": updated.bookingStatus.name})
        self.db.commit()
        if updated.bookingStatus != target:
            logger.warning("booking %s: requested %s, backend reports %s", booking_id, target.name, updated.bookingStatus.name)
        return updated

    def refresh_after_payment(self, booking_id: int | None, customer_id: int | None) -> Booking | None:
        """Re-read a booking once its payment is confirmed so a pending handoff shows it paid."""
        if booking_id is None:
            return None
        booking = self.get(booking_id)
        if customer_id is not None:
            pending = self.handoff.peek(customer_id)
            if pending is not None and pending.same_as(booking):
                self.handoff.put(customer_id, booking)
        return booking

    def reconcile(self, customer_id: int, items: list[Booking], page: int) -> tuple[list[Booking], bool]:
        """Merge the handoff slot into a freshly fetched page, consuming it on page one."""
        if page != 0:
            return items, False
        return merge_handoff(items, page, self.handoff.take(customer_id))
