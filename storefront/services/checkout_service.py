from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from storefront.core.errors import CheckoutValidationError, CouponRejected, PaymentAttemptError
from storefront.schemas.checkout import CheckoutQuoteOut, CheckoutSession
from storefront.schemas.payments import CheckoutSubmitOut
from storefront.services.booking_request import build_booking_request
from storefront.services.booking_service import BookingLifecycleManager
from storefront.services.busy_guard import BusyGuard, busy_guard
from storefront.services.coupon_service import CouponValidator, apply_coupon, remove_coupon
from storefront.services.payment_gateway import PaymentGatewayAdapter, attempt_out, parse_order_handle
from storefront.services.pricing_service import calculate_breakdown, is_priceable
from storefront.services.rental_backend import RentalBackendClient

logger = logging.getLogger(__name__)

PAYMENT_NOT_STARTED = "Booking created, but the payment could not be started. Please retry payment from My Bookings."


def quote(session: CheckoutSession, validator: CouponValidator) -> CheckoutQuoteOut:
    """Price the session, re-checking any coupon carried in the query against the current subtotal."""
    message = ""
    if session.has_coupon:
        subtotal = calculate_breakdown(session, coupon_discount=0).subtotal
        try:
            apply_coupon(session, session.couponCode, subtotal, validator)
        except CouponRejected as e:
            remove_coupon(session)
            message = e.reason
    breakdown = calculate_breakdown(session)
    valid = is_priceable(session)
    if not valid and not message:
        message = "Invalid booking data"
    return CheckoutQuoteOut(session=session, breakdown=breakdown, valid=valid, message=message)


def apply_coupon_code(session: CheckoutSession, code: str, validator: CouponValidator) -> CheckoutQuoteOut:
    subtotal = calculate_breakdown(session, coupon_discount=0).subtotal
    result = apply_coupon(session, code, subtotal, validator)
    out = quote(session, validator)
    out.message = f"Coupon applied! Saved ₹{result.discountAmount:,.0f}"
    return out


def remove_coupon_code(session: CheckoutSession, validator: CouponValidator) -> CheckoutQuoteOut:
    remove_coupon(session)
    out = quote(session, validator)
    out.message = "Coupon removed"
    return out


def ensure_submittable(session: CheckoutSession) -> None:
    if not session.paymentMethod:
        raise CheckoutValidationError("Please select a payment method")
    if not session.termsAccepted:
        raise CheckoutValidationError("Please accept terms and conditions")
    if not is_priceable(session):
        raise CheckoutValidationError("Invalid booking data")


class CheckoutService:
    def __init__(self, db: Session, backend: RentalBackendClient, validator: CouponValidator,
                 guard: BusyGuard = busy_guard, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.validator = validator
        self.clock = clock
        self.lifecycle = BookingLifecycleManager(db, backend, guard)
        self.gateway = PaymentGatewayAdapter(db, backend, guard)

    def submit(self, session: CheckoutSession, customer_id: int | None) -> CheckoutSubmitOut:
        """Validate, create the booking, and open a gateway attempt for online payment.

        Every validation failure is raised before the backend is contacted.
        """
        ensure_submittable(session)
        if session.has_coupon:
            # A coupon that no longer resolves must not reach the backend at a stale discount.
            subtotal = calculate_breakdown(session, coupon_discount=0).subtotal
            apply_coupon(session, session.couponCode, subtotal, self.validator)
        else:
            remove_coupon(session)
        breakdown = calculate_breakdown(session)
        request = build_booking_request(session, breakdown, now=self.clock())

        booking, raw = self.lifecycle.create(request, customer_id)
        if session.paymentMethod != "online":
            return CheckoutSubmitOut(booking=booking)

        # The booking exists from here on; payment trouble must not hide it from the caller.
        ref = booking.bookingId or booking.id
        attempt = None
        try:
            order = parse_order_handle(raw)
            if order is None:
                logger.warning("booking %s created for online payment without a gateway order", ref)
            else:
                attempt = self.gateway.open_attempt(booking, order, customer_id)
        except PaymentAttemptError as e:
            logger.warning("booking %s created but its payment could not be opened: %s", ref, e)
        if attempt is None:
            return CheckoutSubmitOut(booking=booking, paymentRequired=True, message=PAYMENT_NOT_STARTED)
        description = f"Bike Rental - {session.vehicleName}" if session.vehicleName else ""
        return CheckoutSubmitOut(booking=booking, paymentRequired=True, payment=attempt_out(attempt, description=description))
