import uuid
from sqlalchemy import Column, DateTime, func, Integer, ForeignKey, Text, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
from cleanouts.db.session import Base

class ServiceReview(Base):
    """A customer's rating of a service, at most one per completed booking."""
    __tablename__ = "service_reviews"
    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_service_reviews_rating_range"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=False, index=True)
    booking_id = Column(Uuid(as_uuid=True), ForeignKey("bookings.id"), nullable=False, unique=True)
    service_id = Column(Uuid(as_uuid=True), ForeignKey("services.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False) # 1-5
    comment = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")
    service = relationship("Service")
    booking = relationship("Booking")
