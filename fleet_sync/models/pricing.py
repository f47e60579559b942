"""
Pricing Rule Model

A daily rate that applies to a vehicle over [start_date, end_date).
When several rules cover the same booking, the highest priority wins on
resolution (ties go to the lowest rule id).
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Numeric, ForeignKey, DateTime, Integer, Date, Index
from sqlalchemy.orm import relationship
from ..database import Base


class PricingRule(Base):
    __tablename__ = "pricing_rules"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    vehicle_id = Column(String(36), ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)  # exclusive

    daily_rate = Column(Numeric(10, 2), nullable=False)
    priority = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    vehicle = relationship("Vehicle", back_populates="pricing_rules")

    __table_args__ = (
        Index("ix_pricing_rule_vehicle_dates", "vehicle_id", "start_date", "end_date"),
    )

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "dailyRate": float(self.daily_rate),
            "priority": self.priority or 0,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
        }

    def __repr__(self):
        return f"<PricingRule vehicle_id={self.vehicle_id} rate={self.daily_rate} priority={self.priority}>"
