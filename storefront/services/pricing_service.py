from __future__ import annotations

from datetime import datetime

from storefront.core.config import settings
from storefront.core.numbers import round_half_up
from storefront.schemas.checkout import CheckoutSession, PriceBreakdown

MS_PER_HOUR = 3_600_000


def combine_date_time(date_str: str, time_str: str) -> datetime:
    """'2025-01-01' + '10:00' -> datetime(2025, 1, 1, 10, 0). Raises ValueError."""
    t = (time_str or "00:00").strip()
    if len(t) == 5:
        t += ":00"
    return datetime.fromisoformat(f"{date_str.strip()}T{t}")


def hours_between(start: datetime, end: datetime) -> float:
    ms = (end - start).total_seconds() * 1000
    return ms / MS_PER_HOUR


def trip_hours(session: CheckoutSession) -> float | None:
    """Fractional trip length, or None when the window is missing or malformed."""
    if not session.startDate or not session.endDate:
        return None
    try:
        start = combine_date_time(session.startDate, session.pickupTime)
        end = combine_date_time(session.endDate, session.dropoffTime)
    except ValueError:
        return None
    return hours_between(start, end)


def is_priceable(session: CheckoutSession) -> bool:
    return bool(session.vehicleId and session.packagePrice and session.packagePrice > 0
                and session.startDate and session.endDate)


def long_rental_discount(subtotal: float, hours: float | None) -> int:
    if hours is None or hours < settings.LONG_RENTAL_MIN_DAYS * 24:
        return 0
    return round_half_up(subtotal * settings.LONG_RENTAL_DISCOUNT_RATE)


def calculate_breakdown(session: CheckoutSession, coupon_discount: float | None = None) -> PriceBreakdown:
    """Totals for the checkout summary.

    An incomplete session (no vehicle, price or trip dates) yields an all-zero
    breakdown instead of partial numbers.
    """
    if not is_priceable(session):
        return PriceBreakdown()

    if coupon_discount is None:
        coupon_discount = session.couponDiscount or 0

    subtotal = session.packagePrice
    gst = round_half_up(subtotal * settings.GST_RATE)
    discount = long_rental_discount(subtotal, trip_hours(session))
    deposit = session.packageDeposit or settings.DEFAULT_DEPOSIT

    payable = subtotal + gst - discount - coupon_discount
    return PriceBreakdown(
        subtotal=subtotal,
        gst=gst,
        discount=discount,
        couponDiscount=coupon_discount,
        deposit=deposit,
        payableAmount=payable,
        total=payable + deposit,
        refundableAmount=deposit,
        savings=discount + coupon_discount,
    )
