"""
Driver Model - Drivers assigned to departures
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean

from app.db.database import Base


class Driver(Base):
    """Driver reference data; drivers are paid a share of eligible parcels"""

    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=False)
    license_number = Column(String(50), unique=True, nullable=False)
    is_active = Column(Boolean, default=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
