import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime
from sqlalchemy.orm import relationship
from ..database import Base


class Vehicle(Base):
    """
    Rental vehicle. Owned by the fleet/listings service; read-only here.
    """
    __tablename__ = "vehicles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    make = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    bookings = relationship("Booking", back_populates="vehicle")
    pricing_rules = relationship("PricingRule", back_populates="vehicle")

    @property
    def display_name(self) -> str:
        return f"{self.year} {self.make} {self.model}"

    def __repr__(self):
        return f"<Vehicle {self.display_name}>"
