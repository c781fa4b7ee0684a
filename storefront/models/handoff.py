from sqlalchemy import String, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from storefront.db.session import Base

class HandoffBooking(Base):
    """Single slot per customer holding the most recently created booking."""
    __tablename__ = "handoff_bookings"

    slot_key: Mapped[str] = mapped_column(String(80), primary_key=True)  # latest_booking:<customerId>
    booking_json: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
