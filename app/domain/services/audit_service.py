"""
Audit Service - append-only trail of shipment and departure mutations

Rows are added to the caller's session and committed together with the
change they describe; this service never commits on its own.
"""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permissions import Actor
from app.db.models.audit_log import AuditLog, AuditAction, AuditEntityType


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def snapshot(entity: Any, fields: tuple[str, ...]) -> dict[str, Any]:
    """JSON-serializable copy of selected column values"""
    return {name: _json_safe(getattr(entity, name)) for name in fields}


class AuditService:
    """Service for recording audit entries"""

    def __init__(self, db: AsyncSession):
        self.db = db

    def record(
        self,
        entity_type: AuditEntityType,
        entity_id: int,
        action: AuditAction,
        actor: Actor,
        old_values: Optional[dict[str, Any]] = None,
        new_values: Optional[dict[str, Any]] = None,
        reason: Optional[str] = None,
    ) -> AuditLog:
        entry = AuditLog(
            entity_type=entity_type.value,
            entity_id=entity_id,
            action=action.value,
            old_values=old_values,
            new_values=new_values,
            user_id=actor.user_id,
            reason=reason,
        )
        self.db.add(entry)
        return entry

    async def history(self, entity_type: AuditEntityType, entity_id: int) -> list[AuditLog]:
        """Entries for one entity, oldest first"""
        result = await self.db.execute(
            select(AuditLog)
            .where(
                AuditLog.entity_type == entity_type.value,
                AuditLog.entity_id == entity_id,
            )
            .order_by(AuditLog.id)
        )
        return list(result.scalars().all())
