"""
Shipment Service - registration, confirmation, edits and cancellation

Status and the mirrored is_confirmed / is_cancelled flags are only ever
changed here and in the departure service, always together.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ShipmentAlreadyCancelledError,
    ShipmentAlreadyConfirmedError,
    ShipmentLockedError,
    ShipmentNotFoundError,
    PermissionDeniedError,
    InvalidStateException,
    ValidationException,
)
from app.core.logging import get_logger
from app.core.permissions import Actor, Permission
from app.db.models.audit_log import AuditAction, AuditEntityType
from app.db.models.shipment import Shipment, ShipmentNature, ShipmentStatus, ShipmentType
from app.domain.services.audit_service import AuditService, snapshot
from app.domain.services.sequence_service import (
    SequenceAllocator,
    SequenceScope,
    run_with_sequence_retry,
)

logger = get_logger(__name__)

EDITABLE_FIELDS = (
    "sender_name",
    "sender_phone",
    "receiver_name",
    "receiver_phone",
    "description",
    "weight",
    "declared_value",
    "price",
    "route",
    "nature",
    "type",
    "is_free",
)

_AUDIT_FIELDS = EDITABLE_FIELDS + ("status", "is_confirmed", "is_cancelled", "departure_id")


@dataclass
class ShipmentFilters:
    status: Optional[ShipmentStatus] = None
    route: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    waybill_number: Optional[str] = None
    nature: Optional[ShipmentNature] = None
    include_cancelled: bool = False
    page: int = 1
    limit: int = 20


def normalize_mail_type(nature: ShipmentNature, shipment_type: Optional[ShipmentType]) -> Optional[ShipmentType]:
    """Service level only exists for mail; mail without one is standard"""
    if nature == ShipmentNature.MAIL:
        return shipment_type or ShipmentType.STANDARD
    return None


def check_price(price: Optional[Decimal], is_free: Optional[bool]) -> None:
    """Only free shipments may carry a zero price"""
    if price is not None and price <= 0 and not (price == 0 and is_free):
        raise ValidationException(
            "Price must be greater than zero unless the shipment is free", field="price"
        )


class ShipmentService:
    """Service for managing shipments"""

    def __init__(self, db: AsyncSession, allocator: Optional[SequenceAllocator] = None):
        self.db = db
        self.allocator = allocator or SequenceAllocator(db)
        self.audit = AuditService(db)

    async def create(self, data: dict[str, Any], actor: Actor) -> Shipment:
        """
        Register a shipment under a freshly allocated waybill number.

        The shipment starts PENDING and unconfirmed. A waybill number collision
        with a concurrent writer is retried by re-deriving the number.
        """
        fields = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
        nature = fields.get("nature") or ShipmentNature.PARCEL
        fields["nature"] = nature
        fields["type"] = normalize_mail_type(nature, fields.get("type"))
        check_price(fields.get("price"), fields.get("is_free"))

        async def _create_once() -> int:
            waybill_number = await self.allocator.next_identifier(SequenceScope.SHIPMENT_WAYBILL)
            shipment = Shipment(
                **fields,
                waybill_number=waybill_number,
                status=ShipmentStatus.PENDING,
                is_confirmed=False,
                is_cancelled=False,
                created_by_id=actor.user_id,
            )
            self.db.add(shipment)
            await self.db.flush()
            self.audit.record(
                AuditEntityType.SHIPMENT,
                shipment.id,
                AuditAction.CREATE,
                actor,
                new_values=snapshot(shipment, _AUDIT_FIELDS + ("waybill_number",)),
            )
            await self.db.commit()
            return shipment.id

        shipment_id = await run_with_sequence_retry(self.db, SequenceScope.SHIPMENT_WAYBILL, _create_once)
        shipment = await self.get(shipment_id)

        logger.info(
            "Shipment created",
            extra_data={
                "shipment_id": shipment.id,
                "waybill_number": shipment.waybill_number,
                "nature": shipment.nature.value,
            },
        )
        return shipment

    async def get(self, shipment_id: int) -> Shipment:
        result = await self.db.execute(select(Shipment).where(Shipment.id == shipment_id))
        shipment = result.scalar_one_or_none()
        if not shipment:
            raise ShipmentNotFoundError(shipment_id)
        return shipment

    async def confirm(self, shipment_id: int, actor: Actor) -> Shipment:
        """Lock pricing and weight; a confirmed shipment is only editable with edit privilege"""
        shipment = await self.get(shipment_id)

        if shipment.is_confirmed:
            raise ShipmentAlreadyConfirmedError(shipment_id)
        if shipment.is_cancelled:
            raise ShipmentAlreadyCancelledError(shipment_id)
        if shipment.weight is None:
            raise ValidationException("Weight is required before confirmation", field="weight")

        old_values = snapshot(shipment, _AUDIT_FIELDS)
        shipment.is_confirmed = True
        shipment.confirmed_at = datetime.utcnow()
        shipment.confirmed_by_id = actor.user_id
        shipment.status = ShipmentStatus.CONFIRMED

        self.audit.record(
            AuditEntityType.SHIPMENT,
            shipment.id,
            AuditAction.CONFIRM,
            actor,
            old_values=old_values,
            new_values=snapshot(shipment, _AUDIT_FIELDS),
        )
        await self.db.commit()

        logger.info(
            "Shipment confirmed",
            extra_data={"shipment_id": shipment.id, "waybill_number": shipment.waybill_number},
        )
        return shipment

    async def update(self, shipment_id: int, data: dict[str, Any], actor: Actor) -> Shipment:
        """
        Patch shipment fields.

        Confirmed shipments are locked unless the actor holds edit_shipment;
        the bypass depends on the role, not on the shipment's state.
        """
        shipment = await self.get(shipment_id)

        if shipment.is_cancelled:
            raise InvalidStateException(
                f"Shipment {shipment_id} is cancelled and cannot be edited",
                details={"shipment_id": shipment_id},
            )
        if shipment.is_confirmed and not actor.can(Permission.EDIT_SHIPMENT):
            logger.warning(
                "Edit of confirmed shipment rejected",
                extra_data={"shipment_id": shipment_id, "role": actor.role.value},
            )
            raise ShipmentLockedError(shipment_id)

        changes = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
        if shipment.is_confirmed and "weight" in changes and changes["weight"] is None:
            raise ValidationException("Weight cannot be cleared on a confirmed shipment", field="weight")
        if "price" in changes or "is_free" in changes:
            check_price(changes.get("price", shipment.price), changes.get("is_free", shipment.is_free))

        old_values = snapshot(shipment, _AUDIT_FIELDS)
        for key, value in changes.items():
            setattr(shipment, key, value)
        shipment.type = normalize_mail_type(shipment.nature, shipment.type)

        self.audit.record(
            AuditEntityType.SHIPMENT,
            shipment.id,
            AuditAction.UPDATE,
            actor,
            old_values=old_values,
            new_values=snapshot(shipment, _AUDIT_FIELDS),
        )
        await self.db.commit()

        logger.info(
            "Shipment updated",
            extra_data={"shipment_id": shipment.id, "fields": sorted(changes)},
        )
        return shipment

    async def cancel(self, shipment_id: int, reason: str, actor: Actor) -> Shipment:
        """
        Cancel a shipment.

        The shipment keeps its departure_id; every departure and distribution
        query filters cancelled shipments explicitly.
        """
        if not actor.can(Permission.DELETE_SHIPMENT):
            raise PermissionDeniedError(actor.role.value, Permission.DELETE_SHIPMENT.value)

        shipment = await self.get(shipment_id)
        if shipment.is_cancelled:
            raise ShipmentAlreadyCancelledError(shipment_id)

        old_values = snapshot(shipment, _AUDIT_FIELDS)
        shipment.is_cancelled = True
        shipment.status = ShipmentStatus.CANCELLED
        shipment.cancelled_at = datetime.utcnow()
        shipment.cancelled_by_id = actor.user_id
        shipment.cancellation_reason = reason

        self.audit.record(
            AuditEntityType.SHIPMENT,
            shipment.id,
            AuditAction.CANCEL,
            actor,
            old_values=old_values,
            new_values=snapshot(shipment, _AUDIT_FIELDS),
            reason=reason,
        )
        await self.db.commit()

        logger.info(
            "Shipment cancelled",
            extra_data={
                "shipment_id": shipment.id,
                "waybill_number": shipment.waybill_number,
                "departure_id": shipment.departure_id,
            },
        )
        return shipment

    def _filtered(self, filters: ShipmentFilters) -> Select:
        query = select(Shipment)
        if filters.status:
            query = query.where(Shipment.status == filters.status)
        if filters.route:
            query = query.where(Shipment.route == filters.route)
        if filters.date_from:
            query = query.where(Shipment.created_at >= filters.date_from)
        if filters.date_to:
            query = query.where(Shipment.created_at <= filters.date_to)
        if filters.waybill_number:
            query = query.where(Shipment.waybill_number.ilike(f"%{filters.waybill_number}%"))
        if filters.nature:
            query = query.where(Shipment.nature == filters.nature)
        if not filters.include_cancelled:
            query = query.where(Shipment.is_cancelled.is_(False))
        return query

    async def list(self, filters: ShipmentFilters) -> tuple[list[Shipment], int]:
        """Page of shipments, newest first, and the total match count"""
        query = self._filtered(filters)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))

        result = await self.db.execute(
            query.order_by(Shipment.created_at.desc(), Shipment.id.desc())
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )
        return list(result.scalars().all()), total or 0

    async def statistics(
        self,
        nature: Optional[ShipmentNature] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Counts and totals over non-cancelled shipments"""
        filters = ShipmentFilters(nature=nature, date_from=date_from, date_to=date_to)
        result = await self.db.execute(self._filtered(filters))
        shipments = list(result.scalars().all())

        now = now or datetime.utcnow()
        today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        month_start = today_start.replace(day=1)

        by_status = {status.value: 0 for status in ShipmentStatus if status != ShipmentStatus.CANCELLED}
        by_nature = {n.value: 0 for n in ShipmentNature}
        total_price = Decimal("0")
        total_weight = Decimal("0")
        today_count = 0
        month_count = 0
        month_revenue = Decimal("0")

        for shipment in shipments:
            by_status[shipment.status.value] = by_status.get(shipment.status.value, 0) + 1
            by_nature[shipment.nature.value] += 1
            total_price += shipment.price or 0
            total_weight += shipment.weight or 0
            if shipment.created_at >= today_start:
                today_count += 1
            if shipment.created_at >= month_start:
                month_count += 1
                month_revenue += shipment.price or 0

        return {
            "total": len(shipments),
            "total_price": total_price,
            "total_weight": total_weight,
            "by_status": by_status,
            "by_nature": by_nature,
            "today_count": today_count,
            "month_count": month_count,
            "month_revenue": month_revenue,
        }
