"""
Audit Log Model - append-only record of every shipment and departure mutation

"Who changed what from X to Y". Rows are written in the same transaction as
the change they describe, so a rolled back operation leaves no trace here.
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, DateTime, ForeignKey, String, Text, Index
from sqlalchemy.types import JSON

from app.db.database import Base


class AuditEntityType(str, enum.Enum):
    SHIPMENT = "shipment"
    DEPARTURE = "departure"


class AuditAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    ASSIGN = "assign"
    REMOVE = "remove"
    SEAL = "seal"
    CLOSE = "close"
    DELETE = "delete"
    REGENERATE_DOCUMENT = "regenerate_document"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=False)
    action = Column(String(50), nullable=False, index=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )
