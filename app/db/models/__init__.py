"""
Database Models
"""
from app.db.models.user import User
from app.db.models.driver import Driver
from app.db.models.vehicle import Vehicle
from app.db.models.shipment import Shipment
from app.db.models.departure import Departure
from app.db.models.audit_log import AuditLog

__all__ = [
    "User",
    "Driver",
    "Vehicle",
    "Shipment",
    "Departure",
    "AuditLog",
]
