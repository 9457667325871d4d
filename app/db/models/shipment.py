"""
Shipment Model - registered parcels and mail
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Numeric, ForeignKey, Text, Boolean
from sqlalchemy.orm import relationship

from app.db.database import Base


class ShipmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ASSIGNED = "assigned"
    CANCELLED = "cancelled"


class ShipmentNature(str, enum.Enum):
    PARCEL = "parcel"
    MAIL = "mail"


class ShipmentType(str, enum.Enum):
    """Service level; only meaningful for MAIL"""
    EXPRESS = "express"
    STANDARD = "standard"


def _values(enum_cls):
    return [e.value for e in enum_cls]


class Shipment(Base):
    """Shipment record, identified externally by its waybill number"""

    __tablename__ = "shipments"

    id = Column(Integer, primary_key=True, index=True)
    # Unique constraint is the safety net against concurrent number allocation
    waybill_number = Column(String(50), unique=True, nullable=False, index=True)

    # Sender / receiver
    sender_name = Column(String(255), nullable=False)
    sender_phone = Column(String(50), nullable=False)
    receiver_name = Column(String(255), nullable=False)
    receiver_phone = Column(String(50), nullable=False)

    # Parcel information
    description = Column(Text, nullable=True)
    weight = Column(Numeric(10, 3), nullable=True)  # kg; required once confirmed
    declared_value = Column(Numeric(12, 2), default=0, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    route = Column(String(255), nullable=False, index=True)
    nature = Column(
        SQLEnum(ShipmentNature, values_callable=_values),
        default=ShipmentNature.PARCEL,
        nullable=False,
        index=True,
    )
    type = Column(SQLEnum(ShipmentType, values_callable=_values), nullable=True)
    is_free = Column(Boolean, default=False, nullable=False)

    # Status and locking; is_confirmed / is_cancelled mirror status
    status = Column(
        SQLEnum(ShipmentStatus, values_callable=_values),
        default=ShipmentStatus.PENDING,
        nullable=False,
        index=True,
    )
    is_confirmed = Column(Boolean, default=False, nullable=False)
    confirmed_at = Column(DateTime, nullable=True)
    confirmed_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_cancelled = Column(Boolean, default=False, nullable=False, index=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Membership in a departure; the departure never owns the shipment's lifetime
    departure_id = Column(Integer, ForeignKey("departures.id", ondelete="SET NULL"), nullable=True, index=True)

    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    departure = relationship("Departure", back_populates="shipments")

    @property
    def is_assigned(self) -> bool:
        return self.departure_id is not None
