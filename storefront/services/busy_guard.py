import threading
from contextlib import contextmanager

from storefront.core.errors import BookingBusy


class BusyGuard:
    """Reject a mutating request while another one for the same key is outstanding.

    This is a busy flag, not a queue: the second caller fails immediately
    instead of waiting its turn.
    """

    def __init__(self):
        self._busy: set[str] = set()
        self._lock = threading.Lock()

    def is_busy(self, key: str) -> bool:
        with self._lock:
            return key in self._busy

    @contextmanager
    def hold(self, key: str):
        with self._lock:
            if key in self._busy:
                raise BookingBusy(key)
            self._busy.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._busy.discard(key)


busy_guard = BusyGuard()
