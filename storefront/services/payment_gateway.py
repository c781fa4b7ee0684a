"""Gateway checkout attempts.

One attempt walks ORDER_CREATED -> WIDGET_OPEN -> SUCCEEDED | FAILED |
USER_CANCELLED. A SUCCEEDED attempt is only paid once the backend accepts the
signature (CONFIRMED); if that call fails the attempt is parked in
CONFIRMATION_FAILED, which is retryable and never reported as paid, since the
vendor may already have captured the money.

The gateway order itself is created by the rental backend together with the
booking; this module only consumes the order handle it returns.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.errors import (
    CheckoutValidationError,
    ConfirmationMismatch,
    PaymentAttemptError,
    PaymentAttemptNotFound,
    RentalBackendError,
)
from storefront.models.payment import PaymentAttempt
from storefront.schemas.booking import Booking
from storefront.schemas.payments import OrderHandleOut, PaymentAttemptOut, WidgetOptionsOut, WidgetOutcomeIn
from storefront.services.audit_service import log_audit
from storefront.services.busy_guard import BusyGuard, busy_guard
from storefront.services.rental_backend import RentalBackendClient

logger = logging.getLogger(__name__)

ORDER_KEYS = ("razorpayOrderDetails", "gatewayOrderDetails", "orderDetails")


class PaymentState(str, Enum):
    IDLE = "IDLE"
    ORDER_CREATED = "ORDER_CREATED"
    WIDGET_OPEN = "WIDGET_OPEN"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    USER_CANCELLED = "USER_CANCELLED"
    CONFIRMED = "CONFIRMED"
    CONFIRMATION_FAILED = "CONFIRMATION_FAILED"


# States that block a second attempt for the same booking.
BLOCKING_STATES = {
    PaymentState.ORDER_CREATED,
    PaymentState.WIDGET_OPEN,
    PaymentState.SUCCEEDED,
    PaymentState.CONFIRMATION_FAILED,
    PaymentState.CONFIRMED,
}
OPEN_STATES = {PaymentState.ORDER_CREATED, PaymentState.WIDGET_OPEN}
RETRYABLE_STATES = {PaymentState.FAILED, PaymentState.USER_CANCELLED}


@dataclass(frozen=True)
class OrderHandle:
    order_id: str
    amount: int
    currency: str = "INR"


@dataclass(frozen=True)
class Succeeded:
    payment_id: str
    order_id: str
    signature: str


@dataclass(frozen=True)
class Failed:
    reason: str
    code: Optional[str] = None


@dataclass(frozen=True)
class Cancelled:
    pass


WidgetOutcome = Union[Succeeded, Failed, Cancelled]


def parse_order_handle(raw: dict) -> OrderHandle | None:
    """Pull the gateway order out of a booking-creation response, if there is one."""
    details = None
    for key in ORDER_KEYS:
        if raw.get(key):
            details = raw[key]
            break
    if details is None:
        return None
    if isinstance(details, str):
        try:
            details = json.loads(details)
        except ValueError:
            raise PaymentAttemptError("Invalid payment order data")
    if not isinstance(details, dict) or not details.get("id"):
        raise PaymentAttemptError("Invalid payment order data")
    try:
        amount = int(details.get("amount") or 0)
    except (TypeError, ValueError):
        raise PaymentAttemptError("Invalid payment order data")
    return OrderHandle(
        order_id=str(details["id"]),
        amount=amount,
        currency=(details.get("currency") or settings.GATEWAY_CURRENCY).upper(),
    )


def outcome_from_widget(body: WidgetOutcomeIn) -> WidgetOutcome:
    if body.status == "cancelled":
        return Cancelled()
    if body.status == "failed":
        return Failed(reason=body.reason or "Payment failed", code=body.code)
    if not (body.paymentId and body.orderId and body.signature):
        raise CheckoutValidationError("paymentId, orderId and signature are required for a successful payment")
    return Succeeded(payment_id=body.paymentId, order_id=body.orderId, signature=body.signature)


def attempt_out(attempt: PaymentAttempt, booking: Booking | None = None, description: str = "") -> PaymentAttemptOut:
    state = PaymentState(attempt.state)
    widget = None
    if state in OPEN_STATES:
        widget = WidgetOptionsOut(
            key=settings.GATEWAY_KEY_ID,
            name=settings.GATEWAY_MERCHANT_NAME,
            description=description or f"Booking {attempt.booking_code or attempt.booking_db_id}",
            currency=attempt.currency,
        )
    return PaymentAttemptOut(
        attemptId=attempt.id,
        bookingId=attempt.booking_code or None,
        bookingDbId=attempt.booking_db_id,
        state=state.value,
        order=OrderHandleOut(id=attempt.order_id, amount=attempt.amount, currency=attempt.currency),
        widget=widget,
        paymentId=attempt.payment_id or None,
        failureReason=attempt.failure_reason or None,
        retryable=state in RETRYABLE_STATES or state == PaymentState.CONFIRMATION_FAILED,
        booking=booking,
    )


class PaymentGatewayAdapter:
    def __init__(self, db: Session, backend: RentalBackendClient, guard: BusyGuard = busy_guard):
        self.db = db
        self.backend = backend
        self.guard = guard

    def get(self, attempt_id: str) -> PaymentAttempt:
        attempt = self.db.get(PaymentAttempt, attempt_id)
        if not attempt:
            raise PaymentAttemptNotFound("Payment attempt not found")
        return attempt

    def _blocking_attempt(self, booking_db_id, booking_code) -> PaymentAttempt | None:
        q = self.db.query(PaymentAttempt).filter(PaymentAttempt.state.in_([s.value for s in BLOCKING_STATES]))
        if booking_db_id is not None:
            q = q.filter(PaymentAttempt.booking_db_id == booking_db_id)
        else:
            q = q.filter(PaymentAttempt.booking_code == (booking_code or ""))
        return q.order_by(PaymentAttempt.created_at.desc()).first()

    def open_attempt(self, booking: Booking, order: OrderHandle, customer_id: int | None = None) -> PaymentAttempt:
        existing = self._blocking_attempt(booking.id, booking.bookingId)
        if existing:
            if existing.state == PaymentState.CONFIRMED.value:
                raise PaymentAttemptError("This booking is already paid")
            raise PaymentAttemptError("A payment is already in progress for this booking")

        attempt = PaymentAttempt(
            id=str(uuid.uuid4()),
            booking_db_id=booking.id,
            booking_code=booking.bookingId or "",
            customer_id=customer_id,
            order_id=order.order_id,
            amount=order.amount,
            currency=order.currency,
            state=PaymentState.ORDER_CREATED.value,
        )
        self.db.add(attempt)
        log_audit(self.db, actor=f"customer:{customer_id}", action="payment_order_received", entity_type="payment_attempt",
                  entity_id=attempt.id, details={"orderId": order.order_id, "amount": order.amount, "booking": booking.bookingId})
        self.db.commit()
        return attempt

    def reopen(self, attempt_id: str) -> PaymentAttempt:
        """Start a fresh attempt on the same gateway order after a failure or cancellation."""
        previous = self.get(attempt_id)
        if PaymentState(previous.state) not in RETRYABLE_STATES:
            raise PaymentAttemptError(f"Payment attempt is {previous.state} and cannot be retried")
        booking = Booking(id=previous.booking_db_id, bookingId=previous.booking_code or None)
        order = OrderHandle(order_id=previous.order_id, amount=previous.amount, currency=previous.currency)
        return self.open_attempt(booking, order, customer_id=previous.customer_id)

    def mark_widget_open(self, attempt_id: str) -> PaymentAttempt:
        attempt = self.get(attempt_id)
        state = PaymentState(attempt.state)
        if state == PaymentState.WIDGET_OPEN:
            return attempt
        if state != PaymentState.ORDER_CREATED:
            raise PaymentAttemptError(f"Payment attempt is {state.value}; the widget cannot be opened")
        attempt.state = PaymentState.WIDGET_OPEN.value
        log_audit(self.db, actor="gateway", action="payment_widget_opened", entity_type="payment_attempt", entity_id=attempt.id)
        self.db.commit()
        return attempt

    def resolve(self, attempt_id: str, outcome: WidgetOutcome) -> PaymentAttempt:
        """Apply the widget's outcome; a success is forwarded to the backend for confirmation."""
        attempt = self.get(attempt_id)
        state = PaymentState(attempt.state)

        # Same success reported twice (double submit, page reload): answer from what we have.
        if isinstance(outcome, Succeeded) and state == PaymentState.CONFIRMED:
            if outcome.payment_id == attempt.payment_id:
                return attempt
            raise PaymentAttemptError("This booking is already paid")

        if state not in OPEN_STATES:
            raise PaymentAttemptError(f"Payment attempt is already {state.value}")

        if isinstance(outcome, Cancelled):
            attempt.state = PaymentState.USER_CANCELLED.value
            attempt.failure_reason = "Payment cancelled by user"
            log_audit(self.db, actor="gateway", action="payment_cancelled", entity_type="payment_attempt", entity_id=attempt.id)
            self.db.commit()
            return attempt

        if isinstance(outcome, Failed):
            attempt.state = PaymentState.FAILED.value
            attempt.failure_reason = (outcome.reason or "Payment failed")[:500]
            log_audit(self.db, actor="gateway", action="payment_failed", entity_type="payment_attempt", entity_id=attempt.id,
                      details={"reason": outcome.reason, "code": outcome.code})
            self.db.commit()
            return attempt

        if isinstance(outcome, Succeeded):
            if outcome.order_id != attempt.order_id:
                raise CheckoutValidationError("Payment does not belong to this order")
            attempt.state = PaymentState.SUCCEEDED.value
            attempt.payment_id = outcome.payment_id
            attempt.signature = outcome.signature
            attempt.failure_reason = ""
            log_audit(self.db, actor="gateway", action="payment_succeeded", entity_type="payment_attempt", entity_id=attempt.id,
                      details={"paymentId": outcome.payment_id})
            self.db.commit()
            return self._confirm(attempt)

        raise TypeError(f"Unknown widget outcome: {outcome!r}")

    def retry_confirmation(self, attempt_id: str) -> PaymentAttempt:
        attempt = self.get(attempt_id)
        state = PaymentState(attempt.state)
        if state == PaymentState.CONFIRMED:
            return attempt
        if state not in (PaymentState.CONFIRMATION_FAILED, PaymentState.SUCCEEDED):
            raise PaymentAttemptError(f"Payment attempt is {state.value}; nothing to confirm")
        return self._confirm(attempt)

    def _confirm(self, attempt: PaymentAttempt) -> PaymentAttempt:
        key = f"booking:{attempt.booking_db_id}" if attempt.booking_db_id is not None else f"payment:{attempt.id}"
        with self.guard.hold(key):
            try:
                resp = self.backend.confirm_gateway_payment(
                    order_id=attempt.order_id,
                    payment_id=attempt.payment_id,
                    signature=attempt.signature,
                )
                if isinstance(resp, dict) and resp.get("success") is False:
                    raise RentalBackendError(resp.get("message") or "Payment verification failed", payload=resp)
            except RentalBackendError as e:
                attempt.state = PaymentState.CONFIRMATION_FAILED.value
                attempt.failure_reason = str(e)[:500]
                log_audit(self.db, actor="gateway", action="payment_confirmation_failed", entity_type="payment_attempt",
                          entity_id=attempt.id, details={"orderId": attempt.order_id, "paymentId": attempt.payment_id,
                                                         "status": e.status_code, "error": str(e)})
                self.db.commit()
                logger.error("payment %s captured for order %s but confirmation failed: %s",
                             attempt.payment_id, attempt.order_id, e)
                raise ConfirmationMismatch(
                    "Payment was received by the gateway but could not be confirmed. Please retry confirmation.",
                    attempt_id=attempt.id, order_id=attempt.order_id, payment_id=attempt.payment_id,
                ) from e

        attempt.state = PaymentState.CONFIRMED.value
        attempt.failure_reason = ""
        attempt.confirmation_json = json.dumps(resp if isinstance(resp, (dict, list)) else {"raw": str(resp)}, default=str)
        log_audit(self.db, actor="gateway", action="payment_confirmed", entity_type="payment_attempt", entity_id=attempt.id,
                  details={"orderId": attempt.order_id, "paymentId": attempt.payment_id})
        self.db.commit()
        logger.info("payment %s confirmed for booking %s", attempt.payment_id, attempt.booking_code or attempt.booking_db_id)
        return attempt
