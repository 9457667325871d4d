"""
Departure Model - a vehicle run grouping shipments under one general waybill
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, ForeignKey, Text
from sqlalchemy.orm import relationship

from app.db.database import Base


class DepartureStatus(str, enum.Enum):
    """Forward only: OPEN -> SEALED -> CLOSED"""
    OPEN = "open"
    SEALED = "sealed"
    CLOSED = "closed"


class Departure(Base):
    __tablename__ = "departures"

    id = Column(Integer, primary_key=True, index=True)
    # Allocated on seal, immutable afterwards. NULLs do not collide in a unique index.
    general_waybill_number = Column(String(50), unique=True, nullable=True)
    # Last rendered general waybill; regenerated on every fetch
    document_path = Column(String(500), nullable=True)

    status = Column(
        SQLEnum(DepartureStatus, values_callable=lambda x: [e.value for e in x]),
        default=DepartureStatus.OPEN,
        nullable=False,
        index=True,
    )

    route = Column(String(255), nullable=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="SET NULL"), nullable=True)
    driver_id = Column(Integer, ForeignKey("drivers.id", ondelete="SET NULL"), nullable=True, index=True)
    notes = Column(Text, nullable=True)

    # Each pair is stamped once, on the matching transition
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    sealed_at = Column(DateTime, nullable=True, index=True)
    sealed_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    closed_at = Column(DateTime, nullable=True)
    closed_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    shipments = relationship("Shipment", back_populates="departure", order_by="Shipment.id")
    vehicle = relationship("Vehicle")
    driver = relationship("Driver")
