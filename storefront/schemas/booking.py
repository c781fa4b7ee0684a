from __future__ import annotations

from datetime import datetime
from enum import IntEnum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, computed_field, field_validator, model_validator

from storefront.core.numbers import round_half_up


class BookingStatus(IntEnum):
    """Canonical booking lifecycle; the integer is the backend's bookingStatus code."""
    PENDING = 1
    CONFIRMED = 2
    ACTIVE = 3
    COMPLETED = 4
    CANCELLED = 5

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def parse(cls, value: Any) -> "BookingStatus":
        """Accept 2, "2", "confirmed", "Confirmed" or a BookingStatus."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Unknown booking status: {value!r}")
        if isinstance(value, int):
            return cls(value)
        text = str(value or "").strip()
        if text.isdigit():
            return cls(int(text))
        try:
            return cls[text.upper()]
        except KeyError:
            raise ValueError(f"Unknown booking status: {value!r}")


PAYMENT_STATUSES = ("PENDING", "INITIATED", "PAID", "FAILED")

PAYMENT_TYPE_CASH = 1
PAYMENT_TYPE_GATEWAY = 2

DERIVED_FIELDS = {"statusLabel", "durationDisplay"}


def format_duration(hours: float | None) -> str:
    if not hours or hours <= 0:
        return "N/A"
    if hours < 24:
        h = round_half_up(hours)
        return f"{h} hour{'s' if h != 1 else ''}"
    days = int(hours // 24)
    remaining = round_half_up(hours % 24)
    if remaining == 24:
        days, remaining = days + 1, 0
    if remaining == 0:
        return f"{days} day{'s' if days != 1 else ''}"
    return f"{days}d {remaining}h"


def parse_timestamp(value: str | None) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class Booking(BaseModel):
    """A booking as returned by the rental backend. Unknown fields are kept."""
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    bookingId: Optional[str] = None  # server-assigned code, e.g. VB1042

    customerId: Optional[int] = None
    vehicleId: Optional[int] = None

    startDate: Optional[str] = None
    endDate: Optional[str] = None
    startDate1: Optional[str] = None
    endDate1: Optional[str] = None
    totalHours: float = 0

    charges: float = 0
    additionalCharges: float = 0
    additionalChargesDetails: Optional[str] = None
    advanceAmount: float = 0
    gst: float = 0
    discount: float = 0
    couponAmount: float = 0
    couponCode: Optional[str] = None
    finalAmount: float = 0
    totalCharges: float = 0

    bookingStatus: BookingStatus = BookingStatus.PENDING
    paymentStatus: Optional[str] = None
    paymentType: Optional[int] = None

    addressType: Optional[str] = None
    address: Optional[str] = None
    pickupLocationId: Optional[int] = None
    dropLocationId: Optional[int] = None

    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _drop_derived(cls, data):
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if k not in DERIVED_FIELDS}
        return data

    @field_validator("bookingStatus", mode="before")
    @classmethod
    def _parse_status(cls, v):
        if v is None or v == "":
            return BookingStatus.PENDING
        return BookingStatus.parse(v)

    @field_validator("charges", "additionalCharges", "advanceAmount", "gst", "discount",
                     "couponAmount", "finalAmount", "totalCharges", "totalHours", mode="before")
    @classmethod
    def _none_as_zero(cls, v):
        return 0 if v is None else v

    @computed_field
    @property
    def statusLabel(self) -> str:
        return self.bookingStatus.label

    @computed_field
    @property
    def durationDisplay(self) -> str:
        return format_duration(self.totalHours)

    def same_as(self, other: "Booking") -> bool:
        if self.bookingId and other.bookingId:
            return self.bookingId == other.bookingId
        return self.id is not None and self.id == other.id


class BookingListOut(BaseModel):
    items: List[Booking]
    totalPages: int
    totalElements: int
    page: int
    pageSize: int
    sortBy: str
    paginated: bool = True
    tab: str = "all"
    tabCounts: dict[str, int] = {}
    # Tab counts only cover the fetched page unless the page holds the full set.
    tabCountsScope: str = "page"
