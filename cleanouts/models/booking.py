import enum
import uuid
from sqlalchemy import (
    Column, String, DateTime, func, DECIMAL, Integer, ForeignKey, Text, Date, Time, JSON, Index, CheckConstraint, Uuid,
)
from sqlalchemy.orm import relationship
from cleanouts.db.session import Base

class BookingStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"

class PaymentStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    paid = "paid"
    failed = "failed"
    refunded = "refunded"

TERMINAL_STATUSES = frozenset({BookingStatus.completed.value, BookingStatus.cancelled.value})

class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("duration > 0", name="ck_bookings_duration_positive"),
        Index("ix_bookings_service_date", "service_id", "booking_date"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    booking_number = Column(String(20), unique=True, nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=False, index=True)
    service_id = Column(Uuid(as_uuid=True), ForeignKey("services.id", ondelete="RESTRICT"), nullable=False)
    booking_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration = Column(Integer, nullable=False) # whole hours
    total_price = Column(DECIMAL(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.pending.value, index=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.pending.value, index=True)
    payment_intent_id = Column(String(255), nullable=True, index=True)
    customer_info = Column(JSON, nullable=False) # full_name, email, phone, address
    notes = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    # Relationships
    user = relationship("User")
    service = relationship("Service", back_populates="bookings")
    payments = relationship("Payment", back_populates="booking")
