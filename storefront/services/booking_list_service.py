from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timezone
from typing import Any

from pydantic import ValidationError

from storefront.core.errors import RentalBackendError
from storefront.schemas.booking import Booking, BookingListOut, BookingStatus, parse_timestamp
from storefront.services.booking_service import BookingLifecycleManager
from storefront.services.rental_backend import RentalBackendClient

logger = logging.getLogger(__name__)

SORT_KEYS = ("latest", "oldest", "amount", "status")
TABS = ("all", "active", "completed")
MAX_PAGE_SIZE = 100

# The customer-scoped endpoint answers 400/404 on older deployments.
FALLBACK_STATUSES = {400, 404}

ACTIVE_TAB_STATUSES = {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.ACTIVE}


@dataclass
class NormalizedPage:
    items: list[Booking]
    total_elements: int
    total_pages: int
    page: int
    paginated: bool


def _parse_items(raw_items: list) -> list[Booking]:
    items = []
    for raw in raw_items:
        try:
            items.append(Booking.model_validate(raw))
        except ValidationError as e:
            logger.warning("skipping malformed booking in list response: %s", e.errors()[:1])
    return items


def normalize_list_response(data: Any, page: int = 0) -> NormalizedPage:
    """Fold the paginated envelope and the bare-array shape into one.

    A bare array is taken as the complete set, i.e. a single page.
    """
    if isinstance(data, list):
        items = _parse_items(data)
        return NormalizedPage(items=items, total_elements=len(items), total_pages=1, page=0, paginated=False)
    if isinstance(data, dict):
        raw_items = data.get("content")
        if raw_items is None:
            raw_items = data.get("items") or []
        items = _parse_items(raw_items)
        total_elements = int(data.get("totalElements") if data.get("totalElements") is not None else len(items))
        total_pages = int(data.get("totalPages") if data.get("totalPages") is not None else 1)
        number = int(data.get("number") if data.get("number") is not None else page)
        return NormalizedPage(items=items, total_elements=total_elements, total_pages=max(total_pages, 1),
                              page=number, paginated=True)
    raise RentalBackendError("Unexpected booking list response from server")


def _epoch(value: str | None) -> float | None:
    dt = parse_timestamp(value)
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def _created(b: Booking) -> float | None:
    ts = _epoch(b.createdAt)
    return ts if ts is not None else _epoch(b.startDate)


def _newest_first(b: Booking):
    ts = _created(b)
    return (ts is None, -(ts or 0), -(b.id or 0))


def sort_bookings(items: list[Booking], sort_by: str) -> list[Booking]:
    if sort_by == "oldest":
        return sorted(items, key=lambda b: (_created(b) is None, _created(b) or 0, b.id or 0))
    if sort_by == "amount":
        return sorted(items, key=lambda b: (-(b.finalAmount or 0), _newest_first(b)))
    if sort_by == "status":
        return sorted(items, key=lambda b: (int(b.bookingStatus), _newest_first(b)))
    return sorted(items, key=_newest_first)


def filter_by_tab(items: list[Booking], tab: str) -> list[Booking]:
    """View filter over what is already fetched; never sent to the backend."""
    if tab == "active":
        return [b for b in items if b.bookingStatus in ACTIVE_TAB_STATUSES]
    if tab == "completed":
        return [b for b in items if b.bookingStatus == BookingStatus.COMPLETED]
    return list(items)


def tab_counts(items: list[Booking]) -> dict[str, int]:
    return {tab: len(filter_by_tab(items, tab)) for tab in TABS}


class BookingListAggregator:
    def __init__(self, backend: RentalBackendClient, lifecycle: BookingLifecycleManager | None = None):
        self.backend = backend
        self.lifecycle = lifecycle

    def _fetch(self, customer_id: int, page: int, page_size: int, sort_by: str) -> NormalizedPage:
        try:
            data = self.backend.bookings_by_customer(customer_id, page=page, size=page_size, sort_by=sort_by)
            return normalize_list_response(data, page)
        except RentalBackendError as e:
            if e.status_code not in FALLBACK_STATUSES:
                raise
            logger.info("by-customer list returned %s; using all-for-user", e.status_code)

        data = self.backend.all_bookings_for_user()
        if isinstance(data, dict):
            data = data.get("content") or []
        fallback = normalize_list_response(data)
        fallback.items = [b for b in fallback.items if b.customerId is None or b.customerId == customer_id]
        fallback.total_elements = len(fallback.items)
        return fallback

    def list(self, customer_id: int, page: int = 0, page_size: int = 10, sort_by: str = "latest",
             tab: str = "all") -> BookingListOut:
        if sort_by not in SORT_KEYS:
            raise ValueError(f"sortBy must be one of {', '.join(SORT_KEYS)}")
        if tab not in TABS:
            raise ValueError(f"tab must be one of {', '.join(TABS)}")
        if page < 0:
            raise ValueError("page must be >= 0")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"size must be between 1 and {MAX_PAGE_SIZE}")

        fetched = self._fetch(customer_id, page, page_size, sort_by)
        items = sort_bookings(fetched.items, sort_by)
        total_elements = fetched.total_elements

        if self.lifecycle is not None:
            items, merged = self.lifecycle.reconcile(customer_id, items, fetched.page)
            if merged:
                total_elements += 1

        single_page = not fetched.paginated or fetched.total_pages <= 1
        return BookingListOut(
            items=filter_by_tab(items, tab),
            totalPages=1 if not fetched.paginated else fetched.total_pages,
            totalElements=total_elements,
            page=fetched.page,
            pageSize=page_size,
            sortBy=sort_by,
            paginated=fetched.paginated,
            tab=tab,
            tabCounts=tab_counts(items),
            tabCountsScope="all" if single_page else "page",
        )
