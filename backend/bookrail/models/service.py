# backend/bookrail/models/service.py
"""Services offered by providers."""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class Service(Base):
    """A bookable service with a fixed price."""

    __tablename__ = "services"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    provider_profile_id = Column(
        String(26), ForeignKey("provider_profiles.id"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    provider_profile = relationship("ProviderProfile", back_populates="services")

    __table_args__ = (
        CheckConstraint("price > 0", name="check_service_price_positive"),
        CheckConstraint("duration_minutes > 0", name="check_service_duration_positive"),
    )

    def __repr__(self) -> str:
        return f"<Service {self.id}: {self.name} @ {self.price}>"
