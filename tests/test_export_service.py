"""
Tests for the Excel export service
"""
import io
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest
from openpyxl import load_workbook

from app.db.models.shipment import ShipmentNature, ShipmentType
from app.domain.services.export_service import (
    _sanitize_text,
    generate_distribution_report_excel,
    generate_general_waybill_excel,
)


def _departure(**overrides):
    values = {
        "id": 1,
        "general_waybill_number": "BG-2025-0007",
        "route": "Ouaga-Bobo",
        "sealed_at": datetime(2025, 5, 10, 7, 30),
        "driver": SimpleNamespace(display_name="Moussa Traore"),
        "vehicle": SimpleNamespace(name="Bus 1", registration_number="11-AA-0001"),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _shipment(waybill_number: str, weight: str, price: str, nature=ShipmentNature.PARCEL, type=None):
    return SimpleNamespace(
        waybill_number=waybill_number,
        sender_name="Awa Ouedraogo",
        sender_phone="70111111",
        receiver_name="Issa Sawadogo",
        receiver_phone="76222222",
        nature=nature,
        type=type,
        weight=Decimal(weight),
        price=Decimal(price),
    )


def _column_values(ws, column: int) -> list:
    return [ws.cell(row=r, column=column).value for r in range(1, ws.max_row + 1)]


class TestSanitizeText:
    """Formula injection protection"""

    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["=SUM(A1:A10)", "+cmd|'/C calc'!A0", "-1+1", "@SUM(A1)", "\t=cmd"])
    def test_formula_prefixes_are_quoted(self, value):
        assert _sanitize_text(value) == f"'{value}"

    @pytest.mark.unit
    def test_safe_text_unchanged(self):
        assert _sanitize_text("Awa Ouedraogo") == "Awa Ouedraogo"

    @pytest.mark.unit
    def test_empty_string(self):
        assert _sanitize_text("") == ""

    @pytest.mark.unit
    def test_non_string_returned_as_is(self):
        assert _sanitize_text(123) == 123  # type: ignore[arg-type]


class TestGeneralWaybillExcel:
    @pytest.mark.unit
    def test_header_and_details(self):
        content = generate_general_waybill_excel(
            _departure(),
            [_shipment("TC-2025-0001", "10", "1000.00")],
            company_name="Transit Express",
            generated_at=datetime(2025, 5, 10, 8, 0),
        )

        ws = load_workbook(io.BytesIO(content)).active
        assert ws.title == "General waybill"
        assert ws["A1"].value == "Transit Express"
        assert "BG-2025-0007" in ws["A2"].value
        assert "2025-05-10 08:00" in ws["A2"].value
        details = dict(zip(_column_values(ws, 1), _column_values(ws, 2)))
        assert details["Route"] == "Ouaga-Bobo"
        assert details["Driver"] == "Moussa Traore"
        assert details["Vehicle"] == "Bus 1 (11-AA-0001)"

    @pytest.mark.unit
    def test_rows_and_totals(self):
        shipments = [
            _shipment("TC-2025-0001", "10.500", "1000.00"),
            _shipment("TC-2025-0002", "0.050", "250.00", nature=ShipmentNature.MAIL, type=ShipmentType.EXPRESS),
        ]

        content = generate_general_waybill_excel(_departure(), shipments, company_name="Transit Express")

        ws = load_workbook(io.BytesIO(content)).active
        waybills = _column_values(ws, 1)
        assert "TC-2025-0001" in waybills
        assert "TC-2025-0002" in waybills
        assert "MAIL / EXPRESS" in _column_values(ws, 4)
        total_row = waybills.index("Total (2 shipments)") + 1
        assert ws.cell(row=total_row, column=5).value == pytest.approx(10.55)
        assert ws.cell(row=total_row, column=6).value == pytest.approx(1250.0)

    @pytest.mark.unit
    def test_departure_without_driver_or_vehicle(self):
        content = generate_general_waybill_excel(
            _departure(driver=None, vehicle=None, route=None),
            [],
            company_name="Transit Express",
        )

        ws = load_workbook(io.BytesIO(content)).active
        details = dict(zip(_column_values(ws, 1), _column_values(ws, 2)))
        assert details["Driver"] == "-"
        assert details["Vehicle"] == "-"
        assert details["Route"] == "-"
        assert "Total (0 shipments)" in _column_values(ws, 1)

    @pytest.mark.unit
    def test_stored_text_starting_with_dash_is_still_quoted(self):
        content = generate_general_waybill_excel(
            _departure(route="-1+1", sealed_at=None), [], company_name="Transit Express"
        )

        ws = load_workbook(io.BytesIO(content)).active
        details = dict(zip(_column_values(ws, 1), _column_values(ws, 2)))
        assert details["Route"] == "'-1+1"
        assert details["Sealed at"] == "-"

    @pytest.mark.unit
    def test_prices_left_out(self):
        shipments = [
            _shipment("TC-2025-0001", "10.500", "1000.00"),
            _shipment("TC-2025-0002", "2", "250.00"),
        ]

        content = generate_general_waybill_excel(
            _departure(), shipments, company_name="Transit Express", include_prices=False
        )

        ws = load_workbook(io.BytesIO(content)).active
        values = [cell for row in ws.iter_rows(values_only=True) for cell in row]
        assert "Price" not in values
        assert "Weight (kg)" in values
        assert 1000.0 not in values
        assert 1250.0 not in values
        assert ws.max_column == 5
        total_row = _column_values(ws, 1).index("Total (2 shipments)") + 1
        assert ws.cell(row=total_row, column=5).value == pytest.approx(12.5)

    @pytest.mark.unit
    def test_user_text_is_sanitized(self):
        shipment = _shipment("TC-2025-0001", "1", "100.00")
        shipment.sender_name = "=HYPERLINK(\"http://x\")"

        content = generate_general_waybill_excel(_departure(), [shipment], company_name="=EVIL()")

        ws = load_workbook(io.BytesIO(content)).active
        assert ws["A1"].value == "'=EVIL()"
        assert any(str(v).startswith("'=HYPERLINK") for v in _column_values(ws, 2) if v)


class TestDistributionReportExcel:
    @pytest.fixture
    def report(self):
        drivers = [
            {
                "driver_name": "Moussa Traore",
                "shipment_count": 1,
                "total_amount": Decimal("6000.00"),
                "shipments": [
                    {
                        "waybill_number": "TC-2025-0001",
                        "weight": Decimal("20"),
                        "price": Decimal("10000.00"),
                        "driver_amount": Decimal("6000.00"),
                        "sealed_at": datetime(2025, 5, 10, 7, 30),
                    }
                ],
            }
        ]
        regulator = {
            "total_revenue": Decimal("10000.00"),
            "regulator_amount": Decimal("500.00"),
            "shipments": [
                {
                    "waybill_number": "TC-2025-0001",
                    "nature": "parcel",
                    "type": None,
                    "weight": Decimal("20"),
                    "price": Decimal("10000.00"),
                    "sealed_at": datetime(2025, 5, 10, 7, 30),
                }
            ],
        }
        agency = {
            "total_revenue": Decimal("10000.00"),
            "total_driver_distributions": Decimal("6000.00"),
            "total_regulator_distribution": Decimal("500.00"),
            "agency_amount": Decimal("3500.00"),
        }
        content = generate_distribution_report_excel(drivers, regulator, agency, "2025-05-01", "2025-05-31")
        return load_workbook(io.BytesIO(content))

    @pytest.mark.unit
    def test_three_sheets(self, report):
        assert report.sheetnames == ["Summary", "Drivers", "Regulator"]

    @pytest.mark.unit
    def test_summary_amounts(self, report):
        ws = report["Summary"]
        amounts = dict(zip(_column_values(ws, 1), _column_values(ws, 2)))
        assert amounts["Total revenue"] == pytest.approx(10000.0)
        assert amounts["Driver distributions"] == pytest.approx(6000.0)
        assert amounts["Regulator distribution"] == pytest.approx(500.0)
        assert amounts["Agency amount"] == pytest.approx(3500.0)
        assert "2025-05-01" in ws["A2"].value

    @pytest.mark.unit
    def test_driver_sheet_total(self, report):
        ws = report["Drivers"]
        labels = _column_values(ws, 1)
        total_row = labels.index("Total") + 1
        assert ws.cell(row=total_row, column=5).value == pytest.approx(6000.0)

    @pytest.mark.unit
    def test_empty_period(self):
        agency = {
            "total_revenue": Decimal("0"),
            "total_driver_distributions": Decimal("0"),
            "total_regulator_distribution": Decimal("0"),
            "agency_amount": Decimal("0"),
        }
        content = generate_distribution_report_excel(
            [], {"total_revenue": Decimal("0"), "regulator_amount": Decimal("0"), "shipments": []}, agency, "", ""
        )

        ws = load_workbook(io.BytesIO(content))["Summary"]
        assert "..." in ws["A2"].value
