import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, Text, DECIMAL, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
from cleanouts.db.session import Base

class Service(Base):
    __tablename__ = "services"
    __table_args__ = (
        CheckConstraint("base_price >= 0", name="ck_services_base_price_non_negative"),
        CheckConstraint("price_per_hour >= 0", name="ck_services_price_per_hour_non_negative"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    base_price = Column(DECIMAL(10, 2), nullable=False)
    price_per_hour = Column(DECIMAL(10, 2), nullable=False)
    image_url = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    bookings = relationship("Booking", back_populates="service")
