import pytest

from storefront.core.errors import RentalBackendError
from storefront.schemas.booking import Booking, BookingStatus
from storefront.services.booking_list_service import (
    BookingListAggregator,
    filter_by_tab,
    normalize_list_response,
    sort_bookings,
    tab_counts,
)
from storefront.services.booking_service import BookingLifecycleManager
from storefront.services.handoff_service import HandoffStore


@pytest.fixture
def aggregator(db, backend, guard):
    return BookingListAggregator(backend, BookingLifecycleManager(db, backend, guard))


def test_normalize_envelope():
    page = normalize_list_response({
        "content": [{"id": 1, "bookingStatus": 2}],
        "totalElements": 11, "totalPages": 2, "number": 1,
    }, page=1)
    assert page.paginated
    assert page.total_elements == 11
    assert page.total_pages == 2
    assert page.page == 1
    assert page.items[0].bookingStatus == BookingStatus.CONFIRMED


def test_normalize_bare_array_is_one_page():
    page = normalize_list_response([{"id": 1}, {"id": 2}], page=3)
    assert not page.paginated
    assert page.total_pages == 1
    assert page.page == 0
    assert page.total_elements == 2


def test_malformed_rows_are_skipped():
    page = normalize_list_response([{"id": 1}, {"id": 2, "bookingStatus": "lost"}])
    assert [b.id for b in page.items] == [1]


def test_unexpected_shape():
    with pytest.raises(RentalBackendError):
        normalize_list_response("oops")


def _bookings():
    return [
        Booking(id=1, bookingStatus=4, finalAmount=500, createdAt="2025-01-01T09:00:00"),
        Booking(id=2, bookingStatus=1, finalAmount=900, createdAt="2025-01-03T09:00:00"),
        Booking(id=3, bookingStatus=3, finalAmount=700, createdAt="2025-01-02T09:00:00"),
        Booking(id=4, bookingStatus=5, finalAmount=100, startDate="2025-01-04T10:00:00"),
    ]


@pytest.mark.parametrize("sort_by, expected", [
    ("latest", [4, 2, 3, 1]),
    ("oldest", [1, 3, 2, 4]),
    ("amount", [2, 3, 1, 4]),
    ("status", [2, 3, 1, 4]),
])
def test_sorting(sort_by, expected):
    assert [b.id for b in sort_bookings(_bookings(), sort_by)] == expected


def test_tabs():
    items = _bookings()
    assert [b.id for b in filter_by_tab(items, "active")] == [2, 3]
    assert [b.id for b in filter_by_tab(items, "completed")] == [1]
    assert tab_counts(items) == {"all": 4, "active": 2, "completed": 1}


def test_list_envelope(aggregator, backend):
    for _ in range(3):
        backend.add()
    out = aggregator.list(42, page=0, page_size=2)
    assert out.paginated
    assert out.totalElements == 3
    assert out.totalPages == 2
    assert len(out.items) == 2
    assert out.tabCountsScope == "page"
    assert backend.called("bookings_by_customer")[0] == ("bookings_by_customer", 42, 0, 2, "latest")


def test_list_bare_array(aggregator, backend):
    backend.list_as_array = True
    backend.add()
    backend.add()
    out = aggregator.list(42)
    assert not out.paginated
    assert out.totalPages == 1
    assert out.tabCountsScope == "all"


@pytest.mark.parametrize("status", [400, 404])
def test_list_falls_back_to_all_for_user(aggregator, backend, status):
    backend.list_error = RentalBackendError("not here", status_code=status)
    backend.add()
    backend.add(customerId=7)
    out = aggregator.list(42)
    assert out.totalPages == 1
    assert out.totalElements == 1
    assert [b.customerId for b in out.items] == [42]
    assert backend.called("all_bookings_for_user")


def test_list_server_error_propagates(aggregator, backend):
    backend.list_error = RentalBackendError("Server error. Please try again later.", status_code=500)
    with pytest.raises(RentalBackendError):
        aggregator.list(42)
    assert not backend.called("all_bookings_for_user")


def test_list_merges_handoff_without_duplicates(aggregator, backend, db):
    listed = backend.add()
    store = HandoffStore(db)

    store.put(42, Booking.model_validate(listed))
    out = aggregator.list(42)
    assert [b.id for b in out.items] == [listed["id"]]
    assert out.totalElements == 1

    store.put(42, Booking(id=999, bookingId="VB999", customerId=42))
    out = aggregator.list(42)
    assert out.items[0].bookingId == "VB999"
    assert out.totalElements == 2

    out = aggregator.list(42)
    assert [b.id for b in out.items] == [listed["id"]]


def test_tab_applies_after_merge(aggregator, backend, db):
    backend.add(bookingStatus=4)
    HandoffStore(db).put(42, Booking(id=999, bookingId="VB999", customerId=42, bookingStatus=1))
    out = aggregator.list(42, tab="completed")
    assert [b.bookingStatus for b in out.items] == [BookingStatus.COMPLETED]
    assert out.tabCounts == {"all": 2, "active": 1, "completed": 1}


@pytest.mark.parametrize("kwargs", [{"sort_by": "price"}, {"tab": "upcoming"}, {"page": -1}, {"page_size": 0}])
def test_list_rejects_bad_params(aggregator, kwargs):
    with pytest.raises(ValueError):
        aggregator.list(42, **kwargs)
