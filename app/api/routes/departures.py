"""
Departure API Routes - building, sealing, closing and printing departures
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import require_permission
from app.api.projection import mask_financials
from app.api.routes.schemas import (
    ActionResponse,
    AuditEntryResponse,
    ShipmentResponse,
    parse_date_param,
    total_pages,
)
from app.core.config import settings
from app.core.logging import get_logger
from app.core.permissions import Actor, Permission
from app.core.validation import sanitized_text_validator
from app.db.database import get_db
from app.db.models.audit_log import AuditEntityType
from app.db.models.departure import Departure, DepartureStatus
from app.domain.services.audit_service import AuditService
from app.domain.services.departure_service import DepartureFilters, DepartureService

logger = get_logger(__name__)

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ==================== Schemas ====================


class DepartureCreate(BaseModel):
    route: Optional[str] = Field(None, max_length=255)
    vehicle_id: Optional[int] = None
    driver_id: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("route", "notes")
    @classmethod
    def sanitize_text(cls, v: Optional[str]) -> Optional[str]:
        return sanitized_text_validator(v)


class DepartureUpdate(DepartureCreate):
    """Partial update; only the fields present in the body change"""


class AssignShipmentsRequest(BaseModel):
    shipment_ids: List[int] = Field(..., min_length=1)


class DepartureItemResponse(BaseModel):
    id: int
    general_waybill_number: Optional[str] = None
    status: DepartureStatus
    route: Optional[str] = None
    vehicle_id: Optional[int] = None
    vehicle_registration: Optional[str] = None
    driver_id: Optional[int] = None
    driver_name: Optional[str] = None
    notes: Optional[str] = None
    shipment_count: int
    has_document: bool
    created_at: Optional[datetime] = None
    sealed_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None


class DepartureResponse(DepartureItemResponse):
    shipments: List[ShipmentResponse]


class PaginatedDeparturesResponse(BaseModel):
    items: List[DepartureItemResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class AssignShipmentsResponse(BaseModel):
    departure: DepartureResponse
    assigned_count: int


class SealResponse(BaseModel):
    departure: DepartureResponse
    general_waybill_number: str
    document_url: str


class DepartureSummaryResponse(BaseModel):
    departure_id: int
    general_waybill_number: Optional[str] = None
    status: DepartureStatus
    shipment_count: int
    total_weight: Decimal
    total_price: Optional[Decimal] = None
    total_declared_value: Optional[Decimal] = None


def _item_fields(departure: Departure) -> dict[str, Any]:
    return {
        "id": departure.id,
        "general_waybill_number": departure.general_waybill_number,
        "status": departure.status,
        "route": departure.route,
        "vehicle_id": departure.vehicle_id,
        "vehicle_registration": departure.vehicle.registration_number if departure.vehicle else None,
        "driver_id": departure.driver_id,
        "driver_name": departure.driver.display_name if departure.driver else None,
        "notes": departure.notes,
        "shipment_count": len(departure.shipments),
        "has_document": bool(departure.document_path),
        "created_at": departure.created_at,
        "sealed_at": departure.sealed_at,
        "closed_at": departure.closed_at,
    }


def _to_response(departure: Departure) -> DepartureResponse:
    return DepartureResponse(
        **_item_fields(departure),
        shipments=[ShipmentResponse.model_validate(s) for s in departure.shipments],
    )


# ==================== Endpoints ====================


@router.post(
    "",
    response_model=DepartureResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a departure",
)
async def create_departure(
    payload: DepartureCreate,
    actor: Actor = Depends(require_permission(Permission.CREATE_DEPARTURE)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    departure = await DepartureService(db).create(payload.model_dump(), actor)
    return mask_financials(_to_response(departure), actor)


@router.get(
    "",
    response_model=PaginatedDeparturesResponse,
    summary="List departures",
    description="Newest first, filtered by status, route, creation date and general waybill number.",
)
async def list_departures(
    actor: Actor = Depends(require_permission(Permission.VIEW_SHIPMENTS)),
    db: AsyncSession = Depends(get_db),
    status_filter: Optional[DepartureStatus] = Query(None, alias="status"),
    route: Optional[str] = Query(None),
    general_waybill_number: Optional[str] = Query(None, description="Substring of the general waybill number"),
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
) -> Any:
    filters = DepartureFilters(
        status=status_filter,
        route=route,
        general_waybill_number=general_waybill_number,
        date_from=parse_date_param(date_from, "date_from"),
        date_to=parse_date_param(date_to, "date_to", end_of_day=True),
        page=page,
        limit=page_size,
    )
    departures, total = await DepartureService(db).list(filters)
    return PaginatedDeparturesResponse(
        items=[DepartureItemResponse(**_item_fields(d)) for d in departures],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages(total, page_size),
    )


@router.get(
    "/{departure_id}",
    response_model=DepartureResponse,
    summary="Departure details with its shipments",
    responses={404: {"description": "Departure not found"}},
)
async def get_departure(
    departure_id: int,
    actor: Actor = Depends(require_permission(Permission.VIEW_SHIPMENTS)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    departure = await DepartureService(db).get(departure_id)
    return mask_financials(_to_response(departure), actor)


@router.patch(
    "/{departure_id}",
    response_model=DepartureResponse,
    summary="Edit an open departure",
    responses={409: {"description": "Departure is not open"}},
)
async def update_departure(
    departure_id: int,
    payload: DepartureUpdate,
    actor: Actor = Depends(require_permission(Permission.CREATE_DEPARTURE)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    departure = await DepartureService(db).update(
        departure_id, payload.model_dump(exclude_unset=True), actor
    )
    return mask_financials(_to_response(departure), actor)


@router.delete(
    "/{departure_id}",
    response_model=ActionResponse,
    summary="Delete a departure",
    description="Members are released. Only top-tier roles may delete a sealed or closed departure.",
)
async def delete_departure(
    departure_id: int,
    actor: Actor = Depends(require_permission(Permission.DELETE_DEPARTURE)),
    db: AsyncSession = Depends(get_db),
) -> ActionResponse:
    await DepartureService(db).delete(departure_id, actor)
    return ActionResponse(success=True, message=f"Departure {departure_id} deleted")


@router.post(
    "/{departure_id}/shipments",
    response_model=AssignShipmentsResponse,
    summary="Assign shipments",
    description="All or nothing. Shipments already on this departure are ignored.",
    responses={
        404: {"description": "Departure or shipment not found"},
        409: {"description": "Departure not open, or a shipment is cancelled or on another departure"},
    },
)
async def assign_shipments(
    departure_id: int,
    payload: AssignShipmentsRequest,
    actor: Actor = Depends(require_permission(Permission.CREATE_DEPARTURE)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    departure, assigned = await DepartureService(db).assign_shipments(
        departure_id, payload.shipment_ids, actor
    )
    response = AssignShipmentsResponse(departure=_to_response(departure), assigned_count=assigned)
    return mask_financials(response, actor)


@router.delete(
    "/{departure_id}/shipments/{shipment_id}",
    response_model=DepartureResponse,
    summary="Remove a shipment from an open departure",
)
async def remove_shipment(
    departure_id: int,
    shipment_id: int,
    actor: Actor = Depends(require_permission(Permission.CREATE_DEPARTURE)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    departure = await DepartureService(db).remove_shipment(departure_id, shipment_id, actor)
    return mask_financials(_to_response(departure), actor)


@router.post(
    "/{departure_id}/seal",
    response_model=SealResponse,
    summary="Seal a departure",
    description=(
        "Allocates the general waybill number, confirms every member and renders "
        "the general waybill, atomically."
    ),
    responses={
        409: {"description": "Not open, empty, a cancelled member, or a numbering conflict"},
        500: {"description": "Document generation failed; nothing was changed"},
    },
)
async def seal_departure(
    departure_id: int,
    actor: Actor = Depends(require_permission(Permission.VALIDATE_DEPARTURE)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    departure = await DepartureService(db).seal(departure_id, actor)
    response = SealResponse(
        departure=_to_response(departure),
        general_waybill_number=departure.general_waybill_number,
        document_url=f"/api/departures/{departure_id}/document",
    )
    return mask_financials(response, actor)


@router.post(
    "/{departure_id}/close",
    response_model=DepartureResponse,
    summary="Close a sealed departure",
)
async def close_departure(
    departure_id: int,
    actor: Actor = Depends(require_permission(Permission.VALIDATE_DEPARTURE)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    departure = await DepartureService(db).close(departure_id, actor)
    return mask_financials(_to_response(departure), actor)


@router.get(
    "/{departure_id}/summary",
    response_model=DepartureSummaryResponse,
    summary="Departure totals",
    description="Weight is always shown; monetary totals only to roles with view_finance.",
)
async def departure_summary(
    departure_id: int,
    actor: Actor = Depends(require_permission(Permission.VIEW_SHIPMENTS)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    summary = await DepartureService(db).get_summary(departure_id, actor)
    departure = summary["departure"]
    response = DepartureSummaryResponse(
        departure_id=departure.id,
        general_waybill_number=departure.general_waybill_number,
        status=departure.status,
        shipment_count=summary["shipment_count"],
        total_weight=summary["total_weight"],
        total_price=summary["total_price"],
        total_declared_value=summary["total_declared_value"],
    )
    return mask_financials(response, actor)


@router.get(
    "/{departure_id}/document",
    summary="Download the general waybill",
    description="Regenerated from current data on every request. Only for sealed or closed departures.",
    responses={
        200: {"description": "Excel workbook", "content": {XLSX_MEDIA_TYPE: {}}},
        404: {"description": "No document available"},
        409: {"description": "Departure is still open"},
    },
)
async def departure_document(
    departure_id: int,
    actor: Actor = Depends(require_permission(Permission.PRINT_WAYBILL)),
    db: AsyncSession = Depends(get_db),
) -> Response:
    filename, content = await DepartureService(db).get_document(departure_id, actor)
    logger.info(
        "General waybill downloaded",
        extra_data={"departure_id": departure_id, "size_bytes": len(content)},
    )
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get(
    "/{departure_id}/history",
    response_model=List[AuditEntryResponse],
    summary="Departure audit trail",
)
async def departure_history(
    departure_id: int,
    actor: Actor = Depends(require_permission(Permission.VIEW_SHIPMENTS)),
    db: AsyncSession = Depends(get_db),
) -> Any:
    await DepartureService(db).get(departure_id)
    entries = await AuditService(db).history(AuditEntityType.DEPARTURE, departure_id)
    return mask_financials([AuditEntryResponse.model_validate(e) for e in entries], actor)
