"""
Vehicle Model
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean

from app.db.database import Base


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    registration_number = Column(String(50), unique=True, nullable=False)  # e.g. "LT-234-AB"
    name = Column(String(255), nullable=False)  # e.g. "Coaster Kribi"
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
