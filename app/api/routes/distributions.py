"""
Distribution API Routes - driver, regulator and agency shares of closed departures
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import require_permission
from app.api.projection import mask_financials
from app.api.routes.schemas import parse_date_param
from app.core.logging import get_logger
from app.core.permissions import Actor, Permission
from app.db.database import get_db
from app.db.models.shipment import ShipmentNature, ShipmentType
from app.domain.services.distribution_rules import DistributionLine
from app.domain.services.distribution_service import DistributionService

logger = get_logger(__name__)

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ==================== Schemas ====================


class DistributionShipmentResponse(BaseModel):
    shipment_id: int
    waybill_number: str
    nature: ShipmentNature
    type: Optional[ShipmentType] = None
    weight: Optional[Decimal] = None
    price: Optional[Decimal] = None
    driver_amount: Optional[Decimal] = None
    departure_id: int
    sealed_at: datetime


class DriverDistributionResponse(BaseModel):
    driver_id: int
    driver_name: Optional[str] = None
    shipment_count: int
    total_amount: Optional[Decimal] = None
    shipments: List[DistributionShipmentResponse]


class RegulatorDistributionResponse(BaseModel):
    shipment_count: int
    total_revenue: Optional[Decimal] = None
    regulator_amount: Optional[Decimal] = None
    shipments: List[DistributionShipmentResponse]


class AgencyDistributionResponse(BaseModel):
    shipment_count: int
    total_revenue: Optional[Decimal] = None
    total_driver_distributions: Optional[Decimal] = None
    total_regulator_distribution: Optional[Decimal] = None
    agency_amount: Optional[Decimal] = None


class DistributionSummaryResponse(BaseModel):
    total_shipments: int
    total_revenue: Optional[Decimal] = None
    total_driver_distributions: Optional[Decimal] = None
    total_regulator_distribution: Optional[Decimal] = None
    total_agency_amount: Optional[Decimal] = None


def _line(line: DistributionLine, driver_amount: Optional[Decimal] = None) -> DistributionShipmentResponse:
    return DistributionShipmentResponse(
        shipment_id=line.shipment_id,
        waybill_number=line.waybill_number,
        nature=line.nature,
        type=line.type,
        weight=line.weight,
        price=line.price,
        driver_amount=driver_amount,
        departure_id=line.departure_id,
        sealed_at=line.sealed_at,
    )


def _range(date_from: Optional[str], date_to: Optional[str]) -> tuple[Optional[datetime], Optional[datetime]]:
    return (
        parse_date_param(date_from, "date_from"),
        parse_date_param(date_to, "date_to", end_of_day=True),
    )


# ==================== Endpoints ====================


@router.get(
    "/drivers",
    response_model=List[DriverDistributionResponse],
    summary="Driver distribution",
    description="60% of each parcel up to 40 kg, grouped per driver, over closed departures sealed in the range.",
)
async def driver_distribution(
    actor: Actor = Depends(require_permission(Permission.VIEW_DISTRIBUTION)),
    db: AsyncSession = Depends(get_db),
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD"),
    driver_id: Optional[int] = Query(None),
) -> Any:
    dt_from, dt_to = _range(date_from, date_to)
    payouts, names = await DistributionService(db).driver_distribution(dt_from, dt_to, driver_id)
    response = [
        DriverDistributionResponse(
            driver_id=payout.driver_id,
            driver_name=names.get(payout.driver_id),
            shipment_count=payout.shipment_count,
            total_amount=payout.total_amount,
            shipments=[_line(item.line, item.driver_amount) for item in payout.shipments],
        )
        for payout in payouts
    ]
    return mask_financials(response, actor)


@router.get(
    "/regulator",
    response_model=RegulatorDistributionResponse,
    summary="Regulator distribution",
    description="5% of the summed price of eligible parcels and mail.",
)
async def regulator_distribution(
    actor: Actor = Depends(require_permission(Permission.VIEW_DISTRIBUTION)),
    db: AsyncSession = Depends(get_db),
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD"),
) -> Any:
    payout = await DistributionService(db).regulator_distribution(*_range(date_from, date_to))
    response = RegulatorDistributionResponse(
        shipment_count=payout.shipment_count,
        total_revenue=payout.total_revenue,
        regulator_amount=payout.regulator_amount,
        shipments=[_line(line) for line in payout.shipments],
    )
    return mask_financials(response, actor)


@router.get(
    "/agency",
    response_model=AgencyDistributionResponse,
    summary="Agency distribution",
    description="Revenue of every in-scope shipment minus the driver and regulator payouts.",
)
async def agency_distribution(
    actor: Actor = Depends(require_permission(Permission.VIEW_DISTRIBUTION)),
    db: AsyncSession = Depends(get_db),
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD"),
) -> Any:
    payout = await DistributionService(db).agency_distribution(*_range(date_from, date_to))
    response = AgencyDistributionResponse(
        shipment_count=payout.shipment_count,
        total_revenue=payout.total_revenue,
        total_driver_distributions=payout.total_driver_distributions,
        total_regulator_distribution=payout.total_regulator_distribution,
        agency_amount=payout.agency_amount,
    )
    return mask_financials(response, actor)


@router.get(
    "/summary",
    response_model=DistributionSummaryResponse,
    summary="Distribution summary",
)
async def distribution_summary(
    actor: Actor = Depends(require_permission(Permission.VIEW_DISTRIBUTION)),
    db: AsyncSession = Depends(get_db),
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD"),
) -> Any:
    summary = await DistributionService(db).summary(*_range(date_from, date_to))
    response = DistributionSummaryResponse(
        total_shipments=summary.total_shipments,
        total_revenue=summary.total_revenue,
        total_driver_distributions=summary.total_driver_distributions,
        total_regulator_distribution=summary.total_regulator_distribution,
        total_agency_amount=summary.total_agency_amount,
    )
    return mask_financials(response, actor)


@router.get(
    "/export",
    summary="Export distributions to Excel",
    responses={200: {"description": "Excel workbook", "content": {XLSX_MEDIA_TYPE: {}}}},
)
async def export_distributions(
    actor: Actor = Depends(require_permission(Permission.EXPORT_DATA)),
    db: AsyncSession = Depends(get_db),
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD"),
) -> Response:
    dt_from, dt_to = _range(date_from, date_to)
    content = await DistributionService(db).export_excel(dt_from, dt_to)

    filename = f"distributions_{date_from or 'all'}_{date_to or 'all'}.xlsx"
    logger.info(
        "Distribution export downloaded",
        extra_data={"user_id": actor.user_id, "size_bytes": len(content)},
    )
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
