"""
Shipment API Routes - registration, confirmation, edits, cancellation and listing
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import require_permission
from app.api.projection import mask_financials
from app.api.routes.schemas import (
    AuditEntryResponse,
    PaginatedShipmentsResponse,
    ShipmentResponse,
    parse_date_param,
    total_pages,
)
from app.core.config import settings
from app.core.permissions import Actor, Permission
from app.core.validation import (
    money_validator,
    name_validator,
    phone_validator,
    sanitized_text_validator,
    weight_validator,
)
from app.db.database import get_db
from app.db.models.audit_log import AuditEntityType
from app.db.models.shipment import ShipmentNature, ShipmentStatus, ShipmentType
from app.domain.services.audit_service import AuditService
from app.domain.services.shipment_service import ShipmentFilters, ShipmentService

router = APIRouter()


# ==================== Schemas ====================


class _ShipmentFields(BaseModel):
    @field_validator("sender_name", "receiver_name", check_fields=False)
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return name_validator(v)

    @field_validator("sender_phone", "receiver_phone", check_fields=False)
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return phone_validator(v)

    @field_validator("description", "route", check_fields=False)
    @classmethod
    def sanitize_text(cls, v: Optional[str]) -> Optional[str]:
        return sanitized_text_validator(v)

    @field_validator("weight", check_fields=False)
    @classmethod
    def validate_weight(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return weight_validator(v)

    @field_validator("price", "declared_value", check_fields=False)
    @classmethod
    def validate_money(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        # Free shipments carry a zero price
        return money_validator(v, allow_zero=True)


class ShipmentCreate(_ShipmentFields):
    sender_name: str
    sender_phone: str
    receiver_name: str
    receiver_phone: str
    description: Optional[str] = None
    weight: Optional[Decimal] = None
    declared_value: Decimal = Decimal("0")
    price: Decimal
    route: str = Field(..., min_length=1, max_length=255)
    nature: ShipmentNature = ShipmentNature.PARCEL
    type: Optional[ShipmentType] = None
    is_free: bool = False

    @model_validator(mode="after")
    def check_price(self) -> "ShipmentCreate":
        if self.price == 0 and not self.is_free:
            raise ValueError("Price must be greater than zero unless the shipment is free")
        return self


class ShipmentUpdate(_ShipmentFields):
    """Partial update; only the fields present in the body change"""
    sender_name: Optional[str] = None
    sender_phone: Optional[str] = None
    receiver_name: Optional[str] = None
    receiver_phone: Optional[str] = None
    description: Optional[str] = None
    weight: Optional[Decimal] = None
    declared_value: Optional[Decimal] = None
    price: Optional[Decimal] = None
    route: Optional[str] = Field(None, min_length=1, max_length=255)
    nature: Optional[ShipmentNature] = None
    type: Optional[ShipmentType] = None
    is_free: Optional[bool] = None

    @model_validator(mode="after")
    def check_price(self) -> "ShipmentUpdate":
        # is_free left out is checked against the stored shipment
        if self.price == 0 and self.is_free is False:
            raise ValueError("Price must be greater than zero unless the shipment is free")
        return self


class ShipmentCancel(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)

    @field_validator("reason")
    @classmethod
    def sanitize_reason(cls, v: str) -> str:
        return sanitized_text_validator(v)


class ShipmentStatisticsResponse(BaseModel):
    total: int
    total_price: Optional[Decimal] = None
    total_weight: Decimal
    by_status: Dict[str, int]
    by_nature: Dict[str, int]
    today_count: int
    month_count: int
    month_revenue: Optional[Decimal] = None


# ==================== Endpoints ====================


@router.post(
    "",
    response_model=ShipmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a shipment",
    description="Creates a PENDING shipment under a freshly allocated waybill number.",
)
async def create_shipment(
    payload: ShipmentCreate,
    actor: Actor = Depends(require_permission(Permission.CREATE_SHIPMENT)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    shipment = await ShipmentService(db).create(payload.model_dump(), actor)
    return mask_financials(ShipmentResponse.model_validate(shipment), actor)


@router.get(
    "",
    response_model=PaginatedShipmentsResponse,
    summary="List shipments",
    description="Newest first. Cancelled shipments are excluded unless include_cancelled is set.",
)
async def list_shipments(
    actor: Actor = Depends(require_permission(Permission.VIEW_SHIPMENTS)),
    db: AsyncSession = Depends(get_db),
    status_filter: Optional[ShipmentStatus] = Query(None, alias="status"),
    route: Optional[str] = Query(None),
    nature: Optional[ShipmentNature] = Query(None),
    waybill_number: Optional[str] = Query(None, description="Substring of the waybill number"),
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD"),
    include_cancelled: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
) -> Any:
    filters = ShipmentFilters(
        status=status_filter,
        route=route,
        nature=nature,
        waybill_number=waybill_number,
        date_from=parse_date_param(date_from, "date_from"),
        date_to=parse_date_param(date_to, "date_to", end_of_day=True),
        include_cancelled=include_cancelled,
        page=page,
        limit=page_size,
    )
    shipments, total = await ShipmentService(db).list(filters)
    response = PaginatedShipmentsResponse(
        items=[ShipmentResponse.model_validate(s) for s in shipments],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages(total, page_size),
    )
    return mask_financials(response, actor)


@router.get(
    "/statistics",
    response_model=ShipmentStatisticsResponse,
    summary="Shipment statistics",
    description="Counts and totals over non-cancelled shipments.",
)
async def shipment_statistics(
    actor: Actor = Depends(require_permission(Permission.VIEW_SHIPMENTS)),
    db: AsyncSession = Depends(get_db),
    nature: Optional[ShipmentNature] = Query(None),
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD"),
) -> Any:
    stats = await ShipmentService(db).statistics(
        nature=nature,
        date_from=parse_date_param(date_from, "date_from"),
        date_to=parse_date_param(date_to, "date_to", end_of_day=True),
    )
    return mask_financials(ShipmentStatisticsResponse(**stats), actor)


@router.get(
    "/{shipment_id}",
    response_model=ShipmentResponse,
    summary="Shipment details",
    responses={404: {"description": "Shipment not found"}},
)
async def get_shipment(
    shipment_id: int,
    actor: Actor = Depends(require_permission(Permission.VIEW_SHIPMENTS)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    shipment = await ShipmentService(db).get(shipment_id)
    return mask_financials(ShipmentResponse.model_validate(shipment), actor)


@router.patch(
    "/{shipment_id}",
    response_model=ShipmentResponse,
    summary="Edit a shipment",
    description="Confirmed shipments can only be edited by roles holding edit_shipment.",
    responses={409: {"description": "Shipment is locked or cancelled"}},
)
async def update_shipment(
    shipment_id: int,
    payload: ShipmentUpdate,
    actor: Actor = Depends(require_permission(Permission.CREATE_SHIPMENT)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    shipment = await ShipmentService(db).update(shipment_id, payload.model_dump(exclude_unset=True), actor)
    return mask_financials(ShipmentResponse.model_validate(shipment), actor)


@router.post(
    "/{shipment_id}/confirm",
    response_model=ShipmentResponse,
    summary="Confirm a shipment",
    responses={409: {"description": "Already confirmed or cancelled"}},
)
async def confirm_shipment(
    shipment_id: int,
    actor: Actor = Depends(require_permission(Permission.CREATE_SHIPMENT)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    shipment = await ShipmentService(db).confirm(shipment_id, actor)
    return mask_financials(ShipmentResponse.model_validate(shipment), actor)


@router.post(
    "/{shipment_id}/cancel",
    response_model=ShipmentResponse,
    summary="Cancel a shipment",
    responses={409: {"description": "Already cancelled"}},
)
async def cancel_shipment(
    shipment_id: int,
    payload: ShipmentCancel,
    actor: Actor = Depends(require_permission(Permission.DELETE_SHIPMENT)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    shipment = await ShipmentService(db).cancel(shipment_id, payload.reason, actor)
    return mask_financials(ShipmentResponse.model_validate(shipment), actor)


@router.get(
    "/{shipment_id}/history",
    response_model=List[AuditEntryResponse],
    summary="Shipment audit trail",
)
async def shipment_history(
    shipment_id: int,
    actor: Actor = Depends(require_permission(Permission.VIEW_SHIPMENTS)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    await ShipmentService(db).get(shipment_id)
    entries = await AuditService(db).history(AuditEntityType.SHIPMENT, shipment_id)
    return mask_financials([AuditEntryResponse.model_validate(e) for e in entries], actor)
