"""
API tests for /api/distributions
"""
from datetime import datetime
from decimal import Decimal

import httpx
import pytest

from app.core.exceptions import ErrorCode
from app.db.models.departure import DepartureStatus
from app.db.models.shipment import ShipmentNature, ShipmentType

BASE = "/api/distributions"


@pytest.fixture
async def closed_departure(departure_factory, driver_factory, shipment_factory):
    driver = await driver_factory()
    departure = await departure_factory(
        status=DepartureStatus.CLOSED,
        driver_id=driver.id,
        sealed_at=datetime(2025, 5, 10, 7, 30),
    )
    await shipment_factory(price="10000.00", weight="30.000", departure_id=departure.id)
    await shipment_factory(
        price="500.00",
        weight="0.050",
        nature=ShipmentNature.MAIL,
        type=ShipmentType.STANDARD,
        departure_id=departure.id,
    )
    return departure


class TestAccess:
    @pytest.mark.integration
    @pytest.mark.parametrize("path", ["/drivers", "/regulator", "/agency", "/summary"])
    async def test_accountant_cannot_view(self, test_client: httpx.AsyncClient, accountant_headers, path) -> None:
        response = await test_client.get(f"{BASE}{path}", headers=accountant_headers)

        assert response.status_code == 403
        assert response.json()["error"]["details"]["required_permission"] == "view_distribution"

    @pytest.mark.integration
    async def test_staff_cannot_export(self, test_client: httpx.AsyncClient, staff_headers) -> None:
        response = await test_client.get(f"{BASE}/export", headers=staff_headers)

        assert response.status_code == 403


class TestReports:
    @pytest.mark.integration
    async def test_drivers(self, test_client: httpx.AsyncClient, closed_departure, admin_headers) -> None:
        response = await test_client.get(f"{BASE}/drivers", headers=admin_headers)

        assert response.status_code == 200
        [payout] = response.json()
        assert payout["driver_id"] == closed_departure.driver_id
        assert payout["driver_name"] == "Moussa Traore"
        assert payout["shipment_count"] == 1
        assert Decimal(payout["total_amount"]) == Decimal("6000.00")
        assert Decimal(payout["shipments"][0]["driver_amount"]) == Decimal("6000.00")

    @pytest.mark.integration
    async def test_unknown_driver(self, test_client: httpx.AsyncClient, admin_headers) -> None:
        response = await test_client.get(f"{BASE}/drivers?driver_id=999", headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == ErrorCode.DRIVER_NOT_FOUND.value

    @pytest.mark.integration
    async def test_regulator(self, test_client: httpx.AsyncClient, closed_departure, admin_headers) -> None:
        response = await test_client.get(f"{BASE}/regulator", headers=admin_headers)

        body = response.json()
        assert body["shipment_count"] == 2
        assert Decimal(body["total_revenue"]) == Decimal("10500.00")
        assert Decimal(body["regulator_amount"]) == Decimal("525.00")

    @pytest.mark.integration
    async def test_agency_and_summary_agree(
        self, test_client: httpx.AsyncClient, closed_departure, admin_headers
    ) -> None:
        agency = (await test_client.get(f"{BASE}/agency", headers=admin_headers)).json()
        summary = (await test_client.get(f"{BASE}/summary", headers=admin_headers)).json()

        assert Decimal(agency["agency_amount"]) == Decimal("3975.00")
        assert Decimal(summary["total_agency_amount"]) == Decimal(agency["agency_amount"])
        assert summary["total_shipments"] == 2

    @pytest.mark.integration
    async def test_date_range_on_seal_date(
        self, test_client: httpx.AsyncClient, closed_departure, admin_headers
    ) -> None:
        inside = await test_client.get(
            f"{BASE}/summary?date_from=2025-05-10&date_to=2025-05-10", headers=admin_headers
        )
        outside = await test_client.get(f"{BASE}/summary?date_from=2025-05-11", headers=admin_headers)

        assert inside.json()["total_shipments"] == 2
        assert outside.json()["total_shipments"] == 0
        assert Decimal(outside.json()["total_revenue"]) == Decimal("0")

    @pytest.mark.integration
    async def test_malformed_date(self, test_client: httpx.AsyncClient, admin_headers) -> None:
        response = await test_client.get(f"{BASE}/agency?date_to=2025-13-01", headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == ErrorCode.VALIDATION_ERROR.value


class TestExport:
    @pytest.mark.integration
    async def test_accountant_exports(
        self, test_client: httpx.AsyncClient, closed_departure, accountant_headers
    ) -> None:
        response = await test_client.get(
            f"{BASE}/export?date_from=2025-05-01", headers=accountant_headers
        )

        assert response.status_code == 200
        assert response.headers["content-disposition"] == (
            "attachment; filename=distributions_2025-05-01_all.xlsx"
        )
        assert response.content[:2] == b"PK"
