from sqlalchemy import String, Integer, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from storefront.db.session import Base

class PaymentAttempt(Base):
    __tablename__ = "payment_attempts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_db_id: Mapped[int] = mapped_column(Integer, nullable=True, index=True)
    booking_code: Mapped[str] = mapped_column(String(40), default="", index=True)
    customer_id: Mapped[int] = mapped_column(Integer, nullable=True)

    provider: Mapped[str] = mapped_column(String(40), default="razorpay")
    order_id: Mapped[str] = mapped_column(String(120), index=True)
    amount: Mapped[int] = mapped_column(Integer, default=0)  # minor units
    currency: Mapped[str] = mapped_column(String(10), default="INR")

    # ORDER_CREATED, WIDGET_OPEN, SUCCEEDED, FAILED, USER_CANCELLED, CONFIRMED, CONFIRMATION_FAILED
    state: Mapped[str] = mapped_column(String(30), default="ORDER_CREATED", index=True)
    payment_id: Mapped[str] = mapped_column(String(120), default="")
    signature: Mapped[str] = mapped_column(String(255), default="")
    failure_reason: Mapped[str] = mapped_column(String(500), default="")
    confirmation_json: Mapped[str] = mapped_column(Text, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                                                 onupdate=lambda: datetime.now(timezone.utc))
