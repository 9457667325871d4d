"""
Distribution Service - loads closed departures and applies the distribution rules

Scope: non-cancelled shipments of CLOSED departures whose sealed_at falls in
the requested range. Every report reads the same snapshot, so per-driver,
regulator and agency figures always reconcile.
"""
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DriverNotFoundError
from app.core.logging import get_logger, log_async_operation
from app.db.models.departure import Departure, DepartureStatus
from app.db.models.driver import Driver
from app.db.models.shipment import Shipment
from app.domain.services.distribution_rules import (
    AgencyPayout,
    DistributionLine,
    DistributionSummary,
    DriverPayout,
    RegulatorPayout,
    compute_agency_payout,
    compute_driver_payouts,
    compute_regulator_payout,
    compute_summary,
)
from app.domain.services.export_service import generate_distribution_report_excel

logger = get_logger(__name__)


class DistributionService:
    """Read-only reports over sealed and closed departures"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load_lines(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[DistributionLine]:
        query = (
            select(Shipment, Departure)
            .join(Departure, Shipment.departure_id == Departure.id)
            .where(
                Departure.status == DepartureStatus.CLOSED,
                Shipment.is_cancelled.is_(False),
                Shipment.departure_id.is_not(None),
            )
        )
        if date_from:
            query = query.where(Departure.sealed_at >= date_from)
        if date_to:
            query = query.where(Departure.sealed_at <= date_to)

        result = await self.db.execute(
            query.order_by(Departure.sealed_at.desc(), Shipment.id)
        )
        lines = [
            DistributionLine(
                shipment_id=shipment.id,
                waybill_number=shipment.waybill_number,
                nature=shipment.nature,
                type=shipment.type,
                weight=shipment.weight,
                price=shipment.price,
                departure_id=departure.id,
                sealed_at=departure.sealed_at,
                driver_id=departure.driver_id,
            )
            for shipment, departure in result.all()
        ]

        logger.debug(
            "Distribution scope loaded",
            extra_data={
                "date_from": date_from.isoformat() if date_from else None,
                "date_to": date_to.isoformat() if date_to else None,
                "shipments": len(lines),
            },
        )
        return lines

    async def _driver_names(self, driver_ids: list[int]) -> dict[int, str]:
        if not driver_ids:
            return {}
        result = await self.db.execute(select(Driver).where(Driver.id.in_(driver_ids)))
        return {driver.id: driver.display_name for driver in result.scalars().all()}

    async def driver_distribution(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        driver_id: Optional[int] = None,
    ) -> tuple[list[DriverPayout], dict[int, str]]:
        """
        Per-driver payouts for the range.

        Returns:
            Tuple of (payouts, driver id -> display name)
        """
        if driver_id is not None and await self.db.get(Driver, driver_id) is None:
            raise DriverNotFoundError(driver_id)

        payouts = compute_driver_payouts(await self._load_lines(date_from, date_to), driver_id)
        names = await self._driver_names([p.driver_id for p in payouts])
        return payouts, names

    async def regulator_distribution(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> RegulatorPayout:
        return compute_regulator_payout(await self._load_lines(date_from, date_to))

    async def agency_distribution(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> AgencyPayout:
        return compute_agency_payout(await self._load_lines(date_from, date_to))

    async def summary(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> DistributionSummary:
        return compute_summary(await self._load_lines(date_from, date_to))

    @log_async_operation("distribution export")
    async def export_excel(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> bytes:
        """Workbook with summary, per-driver and regulator sheets for the range"""
        lines = await self._load_lines(date_from, date_to)
        payouts = compute_driver_payouts(lines)
        regulator = compute_regulator_payout(lines)
        agency = compute_agency_payout(lines)
        names = await self._driver_names([p.driver_id for p in payouts])

        drivers: list[dict[str, Any]] = [
            {
                "driver_name": names.get(payout.driver_id, f"Driver {payout.driver_id}"),
                "shipment_count": payout.shipment_count,
                "total_amount": payout.total_amount,
                "shipments": [
                    {
                        "waybill_number": item.line.waybill_number,
                        "weight": item.line.weight,
                        "price": item.line.price,
                        "driver_amount": item.driver_amount,
                        "sealed_at": item.line.sealed_at,
                    }
                    for item in payout.shipments
                ],
            }
            for payout in payouts
        ]
        regulator_data = {
            "total_revenue": regulator.total_revenue,
            "regulator_amount": regulator.regulator_amount,
            "shipments": [
                {
                    "waybill_number": line.waybill_number,
                    "nature": line.nature.value,
                    "type": line.type.value if line.type else None,
                    "weight": line.weight,
                    "price": line.price,
                    "sealed_at": line.sealed_at,
                }
                for line in regulator.shipments
            ],
        }
        agency_data = {
            "total_revenue": agency.total_revenue,
            "total_driver_distributions": agency.total_driver_distributions,
            "total_regulator_distribution": agency.total_regulator_distribution,
            "agency_amount": agency.agency_amount,
        }

        content = generate_distribution_report_excel(
            drivers,
            regulator_data,
            agency_data,
            date_from=date_from.strftime("%Y-%m-%d") if date_from else "",
            date_to=date_to.strftime("%Y-%m-%d") if date_to else "",
        )
        logger.info(
            "Distribution report exported",
            extra_data={"shipments": len(lines), "drivers": len(payouts), "size_bytes": len(content)},
        )
        return content
