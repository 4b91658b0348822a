import uuid
from sqlalchemy import Column, String, DateTime, func, Integer, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from cleanouts.db.session import Base

class Payment(Base):
    """Mirror of a Stripe PaymentIntent outcome, written by the webhook."""
    __tablename__ = "payments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    booking_id = Column(Uuid(as_uuid=True), ForeignKey("bookings.id"), nullable=False, index=True)
    stripe_payment_intent_id = Column(String(255), unique=True, nullable=False)
    amount = Column(Integer, nullable=False) # minor units (cents)
    currency = Column(String(3), nullable=False, default="usd")
    status = Column(String(20), nullable=False, index=True) # pending, processing, paid, failed, refunded
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    booking = relationship("Booking", back_populates="payments")
