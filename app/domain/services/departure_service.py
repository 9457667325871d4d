"""
Departure Service - the departure lifecycle

    OPEN --assign/remove/update--> OPEN
    OPEN --seal (has members, none cancelled)--> SEALED
    SEALED --close--> CLOSED

Transitions only move forward. Membership and core fields are frozen once a
departure leaves OPEN. Sealing allocates the general waybill number, locks
every member as CONFIRMED, renders the document and stamps the departure in a
single transaction.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import settings
from app.core.exceptions import (
    CancelledMemberError,
    DepartureNotFoundError,
    DepartureStatusError,
    DocumentGenerationError,
    DriverNotFoundError,
    EmptyDepartureError,
    PermissionDeniedError,
    ShipmentAssignmentError,
    ShipmentNotFoundError,
    ShipmentNotMemberError,
    ValidationException,
    VehicleNotFoundError,
)
from app.core.logging import get_logger, log_async_operation
from app.core.permissions import Actor, Permission
from app.db.models.audit_log import AuditAction, AuditEntityType
from app.db.models.departure import Departure, DepartureStatus
from app.db.models.driver import Driver
from app.db.models.shipment import Shipment, ShipmentStatus
from app.db.models.vehicle import Vehicle
from app.domain.services.audit_service import AuditService, snapshot
from app.domain.services.sequence_service import (
    SequenceAllocator,
    SequenceScope,
    run_with_sequence_retry,
)
from app.domain.services.waybill_document_service import WaybillDocumentStore
from app.state_machine.states import DEPARTURE_TRANSITIONS, is_valid_transition, sources_of

logger = get_logger(__name__)

EDITABLE_FIELDS = ("route", "vehicle_id", "driver_id", "notes")

_AUDIT_FIELDS = EDITABLE_FIELDS + ("status", "general_waybill_number", "document_path")


@dataclass
class DepartureFilters:
    status: Optional[DepartureStatus] = None
    route: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    general_waybill_number: Optional[str] = None
    page: int = 1
    limit: int = 20


def active_members(departure: Departure) -> list[Shipment]:
    """Members that count toward totals and documents"""
    return [s for s in departure.shipments if not s.is_cancelled]


class DepartureService:
    """Service for the departure lifecycle"""

    def __init__(
        self,
        db: AsyncSession,
        allocator: Optional[SequenceAllocator] = None,
        documents: Optional[WaybillDocumentStore] = None,
    ):
        self.db = db
        self.allocator = allocator or SequenceAllocator(db)
        self.documents = documents or WaybillDocumentStore()
        self.audit = AuditService(db)

    # ==================== Reads ====================

    def _with_relations(self, query: Select) -> Select:
        return query.options(
            selectinload(Departure.shipments),
            selectinload(Departure.driver),
            selectinload(Departure.vehicle),
        ).execution_options(populate_existing=True)

    async def get(self, departure_id: int) -> Departure:
        """Departure with members, driver and vehicle loaded"""
        result = await self.db.execute(
            self._with_relations(select(Departure).where(Departure.id == departure_id))
        )
        departure = result.scalar_one_or_none()
        if not departure:
            raise DepartureNotFoundError(departure_id)
        return departure

    async def list(self, filters: DepartureFilters) -> tuple[list[Departure], int]:
        """Page of departures, newest first, and the total match count"""
        query = select(Departure)
        if filters.status:
            query = query.where(Departure.status == filters.status)
        if filters.route:
            query = query.where(Departure.route == filters.route)
        if filters.date_from:
            query = query.where(Departure.created_at >= filters.date_from)
        if filters.date_to:
            query = query.where(Departure.created_at <= filters.date_to)
        if filters.general_waybill_number:
            query = query.where(
                Departure.general_waybill_number.ilike(f"%{filters.general_waybill_number}%")
            )

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))

        result = await self.db.execute(
            self._with_relations(
                query.order_by(Departure.created_at.desc(), Departure.id.desc())
                .offset((filters.page - 1) * filters.limit)
                .limit(filters.limit)
            )
        )
        return list(result.scalars().all()), total or 0

    async def get_summary(self, departure_id: int, actor: Actor) -> dict[str, Any]:
        """
        Member count and totals; cancelled members are excluded.

        Weight is always visible; monetary totals are None for actors without
        view_finance.
        """
        departure = await self.get(departure_id)
        members = active_members(departure)

        total_weight = sum((s.weight or Decimal("0") for s in members), Decimal("0"))
        total_price = sum((s.price or Decimal("0") for s in members), Decimal("0"))
        total_declared = sum((s.declared_value or Decimal("0") for s in members), Decimal("0"))
        sees_finance = actor.sees_finance

        return {
            "departure": departure,
            "shipment_count": len(members),
            "total_weight": total_weight,
            "total_price": total_price if sees_finance else None,
            "total_declared_value": total_declared if sees_finance else None,
        }

    # ==================== Guards ====================

    def _require_status(self, departure: Departure, required: DepartureStatus, operation: str) -> None:
        if departure.status != required:
            logger.warning(
                "Departure transition rejected",
                extra_data={
                    "departure_id": departure.id,
                    "operation": operation,
                    "current_status": departure.status.value,
                    "required_status": required.value,
                },
            )
            raise DepartureStatusError(departure.id, departure.status.value, required.value, operation)

    def _require_transition(self, departure: Departure, target: DepartureStatus, operation: str) -> None:
        if not is_valid_transition(DEPARTURE_TRANSITIONS, departure.status, target):
            self._require_status(departure, sources_of(DEPARTURE_TRANSITIONS, target)[0], operation)

    async def _check_references(self, fields: dict[str, Any]) -> None:
        vehicle_id = fields.get("vehicle_id")
        if vehicle_id is not None and await self.db.get(Vehicle, vehicle_id) is None:
            raise VehicleNotFoundError(vehicle_id)
        driver_id = fields.get("driver_id")
        if driver_id is not None and await self.db.get(Driver, driver_id) is None:
            raise DriverNotFoundError(driver_id)

    def _detach(self, shipment: Shipment, actor: Actor, now: datetime) -> None:
        """Drop membership; a live shipment goes back to CONFIRMED"""
        shipment.departure_id = None
        if shipment.is_cancelled:
            return
        shipment.status = ShipmentStatus.CONFIRMED
        if not shipment.is_confirmed:
            shipment.is_confirmed = True
            shipment.confirmed_at = now
            shipment.confirmed_by_id = actor.user_id

    # ==================== OPEN ====================

    async def create(self, data: dict[str, Any], actor: Actor) -> Departure:
        fields = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
        await self._check_references(fields)

        departure = Departure(**fields, status=DepartureStatus.OPEN, created_by_id=actor.user_id)
        self.db.add(departure)
        await self.db.flush()
        self.audit.record(
            AuditEntityType.DEPARTURE,
            departure.id,
            AuditAction.CREATE,
            actor,
            new_values=snapshot(departure, _AUDIT_FIELDS),
        )
        await self.db.commit()

        logger.info(
            "Departure created",
            extra_data={"departure_id": departure.id, "route": departure.route},
        )
        return await self.get(departure.id)

    async def update(self, departure_id: int, data: dict[str, Any], actor: Actor) -> Departure:
        departure = await self.get(departure_id)
        self._require_status(departure, DepartureStatus.OPEN, "update")

        changes = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
        await self._check_references(changes)

        old_values = snapshot(departure, _AUDIT_FIELDS)
        for key, value in changes.items():
            setattr(departure, key, value)
        self.audit.record(
            AuditEntityType.DEPARTURE,
            departure.id,
            AuditAction.UPDATE,
            actor,
            old_values=old_values,
            new_values=snapshot(departure, _AUDIT_FIELDS),
        )
        await self.db.commit()

        logger.info(
            "Departure updated",
            extra_data={"departure_id": departure.id, "fields": sorted(changes)},
        )
        return await self.get(departure.id)

    async def assign_shipments(
        self,
        departure_id: int,
        shipment_ids: List[int],
        actor: Actor,
    ) -> tuple[Departure, int]:
        """
        Attach shipments to an open departure, all or nothing.

        Shipments already attached to this departure are left as they are.

        Returns:
            Tuple of (departure, number of newly attached shipments)

        Raises:
            ValidationException: empty id list
            DepartureStatusError: departure is not OPEN
            ShipmentNotFoundError: at least one id does not exist
            ShipmentAssignmentError: a shipment is cancelled or belongs to another departure
        """
        if not shipment_ids:
            raise ValidationException("At least one shipment id is required", field="shipment_ids")
        requested = list(dict.fromkeys(shipment_ids))

        departure = await self.get(departure_id)
        self._require_status(departure, DepartureStatus.OPEN, "assign shipments to")

        result = await self.db.execute(select(Shipment).where(Shipment.id.in_(requested)))
        shipments = list(result.scalars().all())

        missing = sorted(set(requested) - {s.id for s in shipments})
        if missing:
            raise ShipmentNotFoundError(", ".join(str(i) for i in missing))

        for shipment in shipments:
            if shipment.is_cancelled or shipment.status == ShipmentStatus.CANCELLED:
                raise ShipmentAssignmentError(departure_id, shipment.id, "shipment is cancelled")
            if shipment.departure_id is not None and shipment.departure_id != departure_id:
                raise ShipmentAssignmentError(
                    departure_id,
                    shipment.id,
                    f"already assigned to departure {shipment.departure_id}",
                )

        attached = [s for s in shipments if s.departure_id != departure_id]
        for shipment in attached:
            shipment.departure_id = departure_id
            shipment.status = ShipmentStatus.ASSIGNED
            self.audit.record(
                AuditEntityType.SHIPMENT,
                shipment.id,
                AuditAction.ASSIGN,
                actor,
                new_values={"departure_id": departure_id},
            )

        self.audit.record(
            AuditEntityType.DEPARTURE,
            departure_id,
            AuditAction.ASSIGN,
            actor,
            new_values={"shipment_ids": [s.id for s in attached]},
        )
        await self.db.commit()

        logger.info(
            "Shipments assigned to departure",
            extra_data={
                "departure_id": departure_id,
                "requested": len(requested),
                "attached": len(attached),
            },
        )
        return await self.get(departure_id), len(attached)

    async def remove_shipment(self, departure_id: int, shipment_id: int, actor: Actor) -> Departure:
        departure = await self.get(departure_id)
        self._require_status(departure, DepartureStatus.OPEN, "remove shipments from")

        shipment = await self.db.get(Shipment, shipment_id)
        if not shipment:
            raise ShipmentNotFoundError(shipment_id)
        if shipment.departure_id != departure_id:
            raise ShipmentNotMemberError(departure_id, shipment_id)

        self._detach(shipment, actor, datetime.utcnow())
        self.audit.record(
            AuditEntityType.DEPARTURE,
            departure_id,
            AuditAction.REMOVE,
            actor,
            old_values={"shipment_id": shipment_id},
        )
        await self.db.commit()

        logger.info(
            "Shipment removed from departure",
            extra_data={"departure_id": departure_id, "shipment_id": shipment_id},
        )
        return await self.get(departure_id)

    # ==================== Transitions ====================

    @log_async_operation("seal departure")
    async def seal(self, departure_id: int, actor: Actor) -> Departure:
        """
        OPEN -> SEALED.

        Effects, all in one transaction: allocate the general waybill number,
        force every member to CONFIRMED, render the document, stamp the
        departure. Any failure rolls everything back and deletes the rendered
        file, so a departure is never stored with a document but no number.

        Raises:
            DepartureStatusError: not OPEN
            EmptyDepartureError: no members
            CancelledMemberError: a member is cancelled
            ValidationException: a member has no weight
            DocumentGenerationError: the document could not be rendered
            SequenceConflictError: number collisions persisted through every retry
        """
        async def _seal_once() -> None:
            departure = await self.get(departure_id)
            self._require_transition(departure, DepartureStatus.SEALED, "seal")

            members = list(departure.shipments)
            if not members:
                raise EmptyDepartureError(departure_id)
            cancelled = [s.id for s in members if s.is_cancelled or s.status == ShipmentStatus.CANCELLED]
            if cancelled:
                raise CancelledMemberError(departure_id, cancelled)
            weightless = [s.id for s in members if s.weight is None]
            if weightless:
                raise ValidationException(
                    "Every shipment needs a weight before sealing",
                    field="weight",
                    details={"shipment_ids": weightless},
                )

            number = await self.allocator.next_identifier(SequenceScope.GENERAL_WAYBILL)
            now = datetime.utcnow()
            old_values = snapshot(departure, _AUDIT_FIELDS)

            for shipment in members:
                if shipment.status != ShipmentStatus.CONFIRMED:
                    shipment.status = ShipmentStatus.CONFIRMED
                if not shipment.is_confirmed:
                    shipment.is_confirmed = True
                    shipment.confirmed_at = now
                    shipment.confirmed_by_id = actor.user_id

            departure.general_waybill_number = number
            departure.status = DepartureStatus.SEALED
            departure.sealed_at = now
            departure.sealed_by_id = actor.user_id

            path = None
            try:
                path = self.documents.render(departure, members)
                departure.document_path = path
                self.audit.record(
                    AuditEntityType.DEPARTURE,
                    departure_id,
                    AuditAction.SEAL,
                    actor,
                    old_values=old_values,
                    new_values=snapshot(departure, _AUDIT_FIELDS),
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                self.documents.remove(path)
                raise

        await run_with_sequence_retry(self.db, SequenceScope.GENERAL_WAYBILL, _seal_once)
        departure = await self.get(departure_id)

        logger.info(
            "Departure sealed",
            extra_data={
                "departure_id": departure_id,
                "general_waybill_number": departure.general_waybill_number,
                "shipment_count": len(departure.shipments),
            },
        )
        return departure

    async def close(self, departure_id: int, actor: Actor) -> Departure:
        """SEALED -> CLOSED; nothing changes the departure afterwards"""
        departure = await self.get(departure_id)
        self._require_transition(departure, DepartureStatus.CLOSED, "close")

        old_values = snapshot(departure, _AUDIT_FIELDS)
        departure.status = DepartureStatus.CLOSED
        departure.closed_at = datetime.utcnow()
        departure.closed_by_id = actor.user_id
        self.audit.record(
            AuditEntityType.DEPARTURE,
            departure_id,
            AuditAction.CLOSE,
            actor,
            old_values=old_values,
            new_values=snapshot(departure, _AUDIT_FIELDS),
        )
        await self.db.commit()

        logger.info(
            "Departure closed",
            extra_data={
                "departure_id": departure_id,
                "general_waybill_number": departure.general_waybill_number,
            },
        )
        return await self.get(departure_id)

    # ==================== Document ====================

    async def get_document(self, departure_id: int, actor: Actor) -> tuple[str, bytes]:
        """
        Regenerate and return the general waybill of a sealed or closed departure.

        The previous file is deleted once the new path is stored. A failure
        leaves the stored departure untouched and surfaces as
        DocumentGenerationError. Actors without finance access receive a
        copy rendered without prices; the stored file always carries them.

        Returns:
            Tuple of (download filename, file content)
        """
        departure = await self.get(departure_id)
        if departure.status == DepartureStatus.OPEN:
            raise DepartureStatusError(
                departure_id,
                departure.status.value,
                f"{DepartureStatus.SEALED.value} or {DepartureStatus.CLOSED.value}",
                "fetch the document of",
            )

        path = departure.document_path
        members = active_members(departure)
        if members:
            previous = departure.document_path
            path = self.documents.render(departure, members)
            departure.document_path = path
            self.audit.record(
                AuditEntityType.DEPARTURE,
                departure_id,
                AuditAction.REGENERATE_DOCUMENT,
                actor,
                old_values={"document_path": previous},
                new_values={"document_path": path},
            )
            try:
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                self.documents.remove(path)
                raise DocumentGenerationError(departure_id, str(e)) from e
            if previous and previous != path:
                self.documents.remove(previous)

        content = self.documents.read(departure_id, path)
        if not actor.sees_finance:
            # Same rows as the stored file, without the price column
            content = self.documents.render_copy(
                departure, members or list(departure.shipments), include_prices=False
            )
        return f"{departure.general_waybill_number}.xlsx", content

    # ==================== Delete ====================

    async def delete(self, departure_id: int, actor: Actor) -> None:
        """
        Delete a departure and release its members.

        Roles listed in DEPARTURE_DELETE_ANY_STATUS_ROLES may delete at any
        status; every other role with delete_departure only while OPEN.
        """
        if not actor.can(Permission.DELETE_DEPARTURE):
            raise PermissionDeniedError(actor.role.value, Permission.DELETE_DEPARTURE.value)

        departure = await self.get(departure_id)
        if actor.role.value not in settings.delete_any_status_roles:
            self._require_status(departure, DepartureStatus.OPEN, "delete")

        status = departure.status
        document_path = departure.document_path
        now = datetime.utcnow()
        released = [s.id for s in departure.shipments]
        for shipment in departure.shipments:
            self._detach(shipment, actor, now)

        self.audit.record(
            AuditEntityType.DEPARTURE,
            departure_id,
            AuditAction.DELETE,
            actor,
            old_values={**snapshot(departure, _AUDIT_FIELDS), "shipment_ids": released},
        )
        await self.db.delete(departure)
        await self.db.commit()
        self.documents.remove(document_path)

        logger.info(
            "Departure deleted",
            extra_data={
                "departure_id": departure_id,
                "status": status.value,
                "released_shipments": len(released),
            },
        )
