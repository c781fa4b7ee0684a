from __future__ import annotations

from datetime import datetime

from storefront.core.config import settings
from storefront.core.errors import CheckoutValidationError
from storefront.schemas.booking import PAYMENT_TYPE_CASH, PAYMENT_TYPE_GATEWAY, BookingStatus
from storefront.schemas.checkout import BookingCreateRequest, CheckoutSession, PriceBreakdown
from storefront.services.pricing_service import combine_date_time, hours_between

# payment method -> (paymentType, paymentStatus)
PAYMENT_STAMPS = {
    "cod": (PAYMENT_TYPE_CASH, "PENDING"),
    "online": (PAYMENT_TYPE_GATEWAY, "INITIATED"),
}


def _as_int(value, default: int | None = None) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _timestamp(date_str: str, time_str: str) -> str:
    t = (time_str or "00:00").strip()
    return f"{date_str}T{t}:00" if len(t) == 5 else f"{date_str}T{t}"


def build_booking_request(session: CheckoutSession, breakdown: PriceBreakdown,
                          now: datetime | None = None) -> BookingCreateRequest:
    """Map a checkout session and its totals onto the backend's create payload.

    Raises CheckoutValidationError before anything is sent when the checkout
    cannot become a booking. `now` (local wall-clock time) defaults to the
    current time.
    """
    if not session.paymentMethod:
        raise CheckoutValidationError("Please select a payment method")
    if not session.startDate or not session.endDate:
        raise CheckoutValidationError("Start date and end date are required")
    if breakdown.payableAmount <= 0:
        raise CheckoutValidationError("Final amount must be greater than zero")

    vehicle_id = _as_int(session.vehicleId)
    if vehicle_id is None:
        raise CheckoutValidationError("Vehicle is required")

    try:
        start = combine_date_time(session.startDate, session.pickupTime)
        end = combine_date_time(session.endDate, session.dropoffTime)
    except ValueError:
        raise CheckoutValidationError("Invalid date or time format")

    if start < (now or datetime.now()):
        raise CheckoutValidationError("Start date and time cannot be in the past")

    total_hours = hours_between(start, end)
    if total_hours <= 0:
        raise CheckoutValidationError("Dropoff time must be after pickup time")
    if total_hours < settings.MIN_RENTAL_HOURS:
        raise CheckoutValidationError("Minimum rental duration is 1 hour")
    if total_hours > settings.MAX_RENTAL_HOURS:
        raise CheckoutValidationError("Maximum rental duration is 30 days")

    payment_type, payment_status = PAYMENT_STAMPS[session.paymentMethod]
    delivery = session.pickupMode == "delivery"
    final_amount = breakdown.payableAmount

    return BookingCreateRequest(
        vehicleId=vehicle_id,
        packageId=_as_int(session.packageId),
        startDate=_timestamp(session.startDate, session.pickupTime),
        endDate=_timestamp(session.endDate, session.dropoffTime),
        startDate1=session.startDate,
        endDate1=session.endDate,
        charges=breakdown.subtotal,
        gst=breakdown.gst,
        discount=breakdown.discount,
        finalAmount=final_amount,
        totalCharges=final_amount + breakdown.deposit,
        advanceAmount=breakdown.deposit,
        totalHours=round(total_hours, 2),
        paymentType=payment_type,
        paymentStatus=payment_status,
        addressType="Delivery" if delivery else "Self Pickup",
        address=(session.deliveryAddress if delivery else "") or session.storeName or session.city or "",
        deliveryType="Home Delivery" if delivery else None,
        pickupLocationId=session.pickupLocationId or 1,
        dropLocationId=session.dropLocationId or 1,
        couponCode=session.couponCode or None,
        couponId=session.couponId if session.couponCode else 0,
        couponAmount=breakdown.couponDiscount,
        bookingStatus=int(BookingStatus.PENDING),
    )
