import logging
from dataclasses import dataclass
from typing import Any

import requests

from storefront.core.config import settings
from storefront.core.errors import RentalBackendError

logger = logging.getLogger(__name__)

NETWORK_ERROR = "Network error. Please check your internet connection."

ERROR_CODE_MESSAGES = {
    "BOOKING_001": "You already have an active booking. Please complete or cancel it first.",
    "BOOKING_002": "Document verification required.",
    "BOOKING_003": "Invalid booking data.",
}

STATUS_MESSAGES = {
    400: "Invalid request data",
    401: "Authentication failed. Please login again.",
    403: "You do not have permission to perform this action.",
    404: "The requested resource was not found.",
    409: "Booking conflict detected",
    500: "Server error. Please try again later.",
}


@dataclass
class RentalBackendConfig:
    base_url: str           # e.g. https://api.vegobike.in
    timeout: int = 30       # transport timeout in seconds; the only timeout we enforce


def describe_error(status: int, data: Any, not_found: str | None = None) -> str:
    """User-facing message for a failed backend call."""
    data = data if isinstance(data, dict) else {}
    server_msg = data.get("message") or data.get("error")
    code = data.get("errorCode")
    if code in ERROR_CODE_MESSAGES:
        # 002/003 carry a more specific server message when there is one
        if code != "BOOKING_001" and server_msg:
            return server_msg
        return ERROR_CODE_MESSAGES[code]
    if status == 404 and not_found:
        return not_found
    if status in (401, 403):
        return STATUS_MESSAGES[status]
    if status in STATUS_MESSAGES:
        return server_msg or STATUS_MESSAGES[status]
    return server_msg or f"Request failed with status {status}"


def _json_body(r) -> Any:
    try:
        return r.json() if r.text else {}
    except ValueError:
        return {"raw": r.text}


class RentalBackendClient:
    def __init__(self, cfg: RentalBackendConfig, token: str | None = None):
        self.cfg = cfg
        self.base_url = cfg.base_url.rstrip("/")
        self.token = token

    def _headers(self, accept: str = "application/json") -> dict:
        headers = {
            "Content-Type": "application/json",
            "Accept": accept,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _send(self, method: str, path: str, payload: dict | None = None, params: dict | None = None,
              not_found: str | None = None, accept: str = "application/json") -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            r = requests.request(
                method=method.upper(),
                url=url,
                json=payload,
                params=params,
                headers=self._headers(accept),
                timeout=self.cfg.timeout,
            )
        except requests.RequestException as e:
            logger.warning("rental backend %s %s failed: %s", method.upper(), path, e)
            raise RentalBackendError(NETWORK_ERROR) from e
        if r.status_code >= 400:
            logger.warning("rental backend %s %s -> %s", method.upper(), path, r.status_code)
            data = _json_body(r)
            raise RentalBackendError(describe_error(r.status_code, data, not_found), status_code=r.status_code, payload=data)
        return r

    def request(self, method: str, path: str, payload: dict | None = None, params: dict | None = None,
                not_found: str | None = None) -> Any:
        return _json_body(self._send(method, path, payload, params, not_found))

    def create_booking(self, payload: dict) -> dict:
        return self.request("POST", "/bookings", payload, not_found="Vehicle not found")

    def get_booking(self, booking_id: int) -> dict:
        return self.request("GET", f"/bookings/{booking_id}", not_found="Booking not found")

    def cancel_booking(self, booking_id: int, cancelled_by: str = "USER") -> dict:
        return self.request("POST", f"/bookings/{booking_id}/cancel", params={"cancelledBy": cancelled_by},
                            not_found="Booking not found")

    def accept_booking(self, booking_id: int) -> dict:
        return self.request("POST", f"/bookings/{booking_id}/accept", not_found="Booking not found")

    def complete_booking(self, booking_id: int) -> dict:
        return self.request("POST", f"/bookings/{booking_id}/complete", not_found="Booking not found")

    def bookings_by_customer(self, customer_id: int, page: int = 0, size: int = 10, sort_by: str = "latest") -> Any:
        """Paginated envelope {content, totalElements, totalPages, number} or a bare list."""
        params = {"customerId": customer_id, "page": page, "size": size, "sortBy": sort_by}
        return self.request("GET", "/bookings/by-customer", params=params)

    def all_bookings_for_user(self) -> Any:
        return self.request("GET", "/bookings/all-for-user")

    def confirm_gateway_payment(self, *, order_id: str, payment_id: str, signature: str) -> dict:
        params = {"orderId": order_id, "paymentId": payment_id, "signature": signature}
        return self.request("POST", "/payment/gateway/confirm", params=params)

    def get_invoice(self, booking_id: int) -> bytes:
        """Invoice PDF for a booking, as raw bytes."""
        r = self._send("GET", f"/bookings/{booking_id}/invoice", not_found="Invoice not found",
                       accept="application/pdf")
        return r.content


def backend_client(token: str | None = None) -> RentalBackendClient:
    return RentalBackendClient(RentalBackendConfig(
        base_url=settings.RENTAL_API_BASE_URL,
        timeout=settings.RENTAL_API_TIMEOUT,
    ), token=token)
