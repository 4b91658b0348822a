from sqlalchemy import Column, String, Boolean, DateTime, func, Uuid
from cleanouts.db.session import Base

class User(Base):
    """Local mirror of an identity-provider account; the provider owns credentials."""
    __tablename__ = "profiles"

    id = Column(Uuid(as_uuid=True), primary_key=True)
    email = Column(String(255), nullable=True, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="user") # user, admin
    is_active = Column(Boolean, nullable=False, default=True) # false once an admin deactivates the account
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
