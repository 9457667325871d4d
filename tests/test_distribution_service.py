"""
Tests for distribution reports against the database
"""
from datetime import datetime
from decimal import Decimal
from io import BytesIO

import pytest
from openpyxl import load_workbook

from app.core.exceptions import DriverNotFoundError
from app.db.models.departure import DepartureStatus
from app.db.models.shipment import ShipmentNature, ShipmentStatus, ShipmentType
from app.domain.services.distribution_service import DistributionService


@pytest.fixture
async def closed_departure(departure_factory, driver_factory):
    """A closed departure sealed on 2025-05-10 driven by Moussa Traore"""
    driver = await driver_factory()
    departure = await departure_factory(
        status=DepartureStatus.CLOSED,
        driver_id=driver.id,
        sealed_at=datetime(2025, 5, 10, 7, 30),
    )
    return departure


class TestScope:
    @pytest.mark.integration
    async def test_cancelled_shipments_are_excluded(self, db_session, closed_departure, shipment_factory) -> None:
        await shipment_factory(price="10000.00", weight="20", departure_id=closed_departure.id)
        await shipment_factory(
            price="50000.00", weight="20", status=ShipmentStatus.CANCELLED, departure_id=closed_departure.id
        )

        summary = await DistributionService(db_session).summary()

        assert summary.total_shipments == 1
        assert summary.total_revenue == Decimal("10000.00")
        assert summary.total_driver_distributions == Decimal("6000.00")
        assert summary.total_regulator_distribution == Decimal("500.00")
        assert summary.total_agency_amount == Decimal("3500.00")

    @pytest.mark.integration
    @pytest.mark.parametrize("status", [DepartureStatus.OPEN, DepartureStatus.SEALED])
    async def test_only_closed_departures_count(
        self, db_session, departure_factory, shipment_factory, status
    ) -> None:
        departure = await departure_factory(status=status)
        await shipment_factory(departure_id=departure.id)

        summary = await DistributionService(db_session).summary()

        assert summary.total_shipments == 0
        assert summary.total_revenue == Decimal("0")

    @pytest.mark.integration
    async def test_unassigned_shipments_are_ignored(self, db_session, closed_departure, shipment_factory) -> None:
        await shipment_factory(departure_id=closed_departure.id)
        await shipment_factory()

        summary = await DistributionService(db_session).summary()

        assert summary.total_shipments == 1

    @pytest.mark.integration
    async def test_date_range_uses_sealed_at(self, db_session, departure_factory, shipment_factory) -> None:
        april = await departure_factory(status=DepartureStatus.CLOSED, sealed_at=datetime(2025, 4, 30, 23, 0))
        may = await departure_factory(status=DepartureStatus.CLOSED, sealed_at=datetime(2025, 5, 31, 18, 0))
        june = await departure_factory(status=DepartureStatus.CLOSED, sealed_at=datetime(2025, 6, 1, 0, 0))
        for departure in (april, may, june):
            await shipment_factory(price="1000.00", departure_id=departure.id)

        summary = await DistributionService(db_session).summary(
            date_from=datetime(2025, 5, 1),
            date_to=datetime(2025, 5, 31, 23, 59, 59, 999999),
        )

        assert summary.total_shipments == 1
        assert summary.total_revenue == Decimal("1000.00")


class TestReports:
    @pytest.mark.integration
    async def test_driver_report(self, db_session, closed_departure, shipment_factory) -> None:
        await shipment_factory(price="1000.00", weight="40.000", departure_id=closed_departure.id)
        await shipment_factory(price="3000.00", weight="40.010", departure_id=closed_departure.id)

        payouts, names = await DistributionService(db_session).driver_distribution()

        assert len(payouts) == 1
        assert payouts[0].driver_id == closed_departure.driver_id
        assert payouts[0].shipment_count == 1
        assert payouts[0].total_amount == Decimal("600.00")
        assert names[closed_departure.driver_id] == "Moussa Traore"

    @pytest.mark.integration
    async def test_driver_filter_and_unknown_driver(
        self, db_session, closed_departure, shipment_factory, driver_factory
    ) -> None:
        other = await driver_factory(first_name="Ali", last_name="Diallo")
        await shipment_factory(departure_id=closed_departure.id)
        service = DistributionService(db_session)

        payouts, _ = await service.driver_distribution(driver_id=other.id)
        assert payouts == []

        with pytest.raises(DriverNotFoundError):
            await service.driver_distribution(driver_id=999)

    @pytest.mark.integration
    async def test_regulator_report(self, db_session, closed_departure, shipment_factory) -> None:
        await shipment_factory(price="2000.00", weight="45", departure_id=closed_departure.id)
        await shipment_factory(
            price="500.00",
            weight="0.080",
            nature=ShipmentNature.MAIL,
            type=ShipmentType.STANDARD,
            departure_id=closed_departure.id,
        )
        await shipment_factory(
            price="800.00",
            weight="0.080",
            nature=ShipmentNature.MAIL,
            type=ShipmentType.EXPRESS,
            departure_id=closed_departure.id,
        )

        regulator = await DistributionService(db_session).regulator_distribution()

        assert regulator.shipment_count == 2
        assert regulator.total_revenue == Decimal("2500.00")
        assert regulator.regulator_amount == Decimal("125.00")

    @pytest.mark.integration
    async def test_agency_report(self, db_session, closed_departure, shipment_factory) -> None:
        await shipment_factory(price="10000.00", weight="20", departure_id=closed_departure.id)
        await shipment_factory(price="4000.00", weight="70", departure_id=closed_departure.id)

        agency = await DistributionService(db_session).agency_distribution()

        assert agency.shipment_count == 2
        assert agency.total_revenue == Decimal("14000.00")
        assert agency.agency_amount == Decimal("7500.00")

    @pytest.mark.integration
    async def test_export_workbook(self, db_session, closed_departure, shipment_factory) -> None:
        await shipment_factory(price="10000.00", weight="20", departure_id=closed_departure.id)

        content = await DistributionService(db_session).export_excel(
            date_from=datetime(2025, 5, 1), date_to=datetime(2025, 5, 31)
        )

        workbook = load_workbook(BytesIO(content))
        assert workbook.sheetnames == ["Summary", "Drivers", "Regulator"]
