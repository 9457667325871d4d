"""
Tests for the distribution rules (pure functions, no database)
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

import pytest
from hypothesis import given, strategies as st

from app.db.models.shipment import ShipmentNature, ShipmentType
from app.domain.services.distribution_rules import (
    DistributionLine,
    compute_agency_payout,
    compute_driver_payouts,
    compute_regulator_payout,
    compute_summary,
    driver_share,
    is_driver_eligible,
    is_regulator_eligible,
)

_ids = iter(range(1, 1_000_000))


def line(
    price: str = "10000.00",
    weight: Optional[str] = "10",
    nature: ShipmentNature = ShipmentNature.PARCEL,
    type: Optional[ShipmentType] = None,
    driver_id: Optional[int] = 1,
) -> DistributionLine:
    shipment_id = next(_ids)
    return DistributionLine(
        shipment_id=shipment_id,
        waybill_number=f"TC-2025-{shipment_id:04d}",
        nature=nature,
        type=type,
        weight=Decimal(weight) if weight is not None else None,
        price=Decimal(price),
        departure_id=1,
        sealed_at=datetime(2025, 5, 1, 9, 0),
        driver_id=driver_id,
    )


def mail(weight: str, type: ShipmentType, price: str = "1000.00") -> DistributionLine:
    return line(price=price, weight=weight, nature=ShipmentNature.MAIL, type=type)


class TestEligibility:
    @pytest.mark.unit
    @pytest.mark.parametrize("weight,expected", [
        ("39.99", True),
        ("40", True),
        ("40.00", True),
        ("40.01", False),
    ])
    def test_driver_parcel_boundary(self, weight, expected) -> None:
        assert is_driver_eligible(line(weight=weight)) is expected

    @pytest.mark.unit
    def test_driver_never_paid_for_mail(self) -> None:
        assert not is_driver_eligible(mail("0.05", ShipmentType.STANDARD))

    @pytest.mark.unit
    def test_weightless_is_never_eligible(self) -> None:
        assert not is_driver_eligible(line(weight=None))
        assert not is_regulator_eligible(line(weight=None))

    @pytest.mark.unit
    @pytest.mark.parametrize("weight,expected", [("50", True), ("50.01", False)])
    def test_regulator_parcel_boundary(self, weight, expected) -> None:
        assert is_regulator_eligible(line(weight=weight)) is expected

    @pytest.mark.unit
    @pytest.mark.parametrize("weight,expected", [("0.10", True), ("0.11", False)])
    def test_regulator_standard_mail_boundary(self, weight, expected) -> None:
        assert is_regulator_eligible(mail(weight, ShipmentType.STANDARD)) is expected

    @pytest.mark.unit
    @pytest.mark.parametrize("weight,expected", [
        ("0.10", False),
        ("0.11", True),
        ("2.00", True),
        ("2.01", False),
    ])
    def test_regulator_express_mail_window(self, weight, expected) -> None:
        assert is_regulator_eligible(mail(weight, ShipmentType.EXPRESS)) is expected


class TestArithmetic:
    @pytest.mark.unit
    def test_single_parcel_split(self) -> None:
        lines = [line(price="10000.00", weight="20")]

        drivers = compute_driver_payouts(lines)
        regulator = compute_regulator_payout(lines)
        agency = compute_agency_payout(lines)

        assert drivers[0].total_amount == Decimal("6000.00")
        assert regulator.regulator_amount == Decimal("500.00")
        assert agency.agency_amount == Decimal("3500.00")

    @pytest.mark.unit
    def test_driver_share_rounds_half_up(self) -> None:
        assert driver_share(Decimal("0.05")) == Decimal("0.03")
        assert driver_share(Decimal("1234.57")) == Decimal("740.74")

    @pytest.mark.unit
    def test_heavy_parcel_feeds_the_agency(self) -> None:
        lines = [line(price="10000.00", weight="60")]

        agency = compute_agency_payout(lines)

        assert agency.total_driver_distributions == Decimal("0.00")
        assert agency.total_regulator_distribution == Decimal("0.00")
        assert agency.agency_amount == Decimal("10000.00")

    @pytest.mark.unit
    def test_parcel_between_forty_and_fifty_pays_only_the_regulator(self) -> None:
        lines = [line(price="2000.00", weight="45")]

        assert compute_driver_payouts(lines) == []
        assert compute_regulator_payout(lines).regulator_amount == Decimal("100.00")
        assert compute_agency_payout(lines).agency_amount == Decimal("1900.00")

    @pytest.mark.unit
    def test_departure_without_driver_pays_no_driver(self) -> None:
        lines = [line(driver_id=None)]

        assert compute_driver_payouts(lines) == []
        assert compute_agency_payout(lines).agency_amount == Decimal("9500.00")


class TestDriverPayouts:
    @pytest.mark.unit
    def test_grouped_per_driver_in_order_of_appearance(self) -> None:
        lines = [
            line(price="1000.00", driver_id=7),
            line(price="2000.00", driver_id=3),
            line(price="500.00", driver_id=7),
        ]

        payouts = compute_driver_payouts(lines)

        assert [p.driver_id for p in payouts] == [7, 3]
        assert payouts[0].shipment_count == 2
        assert payouts[0].total_amount == Decimal("900.00")
        assert [s.driver_amount for s in payouts[0].shipments] == [Decimal("600.00"), Decimal("300.00")]

    @pytest.mark.unit
    def test_filter_by_driver(self) -> None:
        lines = [line(driver_id=7), line(driver_id=3)]

        payouts = compute_driver_payouts(lines, driver_id=3)

        assert [p.driver_id for p in payouts] == [3]


class TestSummary:
    @pytest.mark.unit
    def test_summary_matches_individual_reports(self) -> None:
        lines = [
            line(price="10000.00", weight="20", driver_id=1),
            line(price="3000.00", weight="45", driver_id=2),
            mail("0.05", ShipmentType.STANDARD, price="500.00"),
            mail("1.5", ShipmentType.EXPRESS, price="1500.00"),
            mail("0.5", ShipmentType.STANDARD, price="700.00"),
        ]

        summary = compute_summary(lines)

        assert summary.total_shipments == 5
        assert summary.total_revenue == Decimal("15700.00")
        assert summary.total_driver_distributions == Decimal("6000.00")
        # 10000 + 3000 + 500 + 1500 eligible
        assert summary.total_regulator_distribution == Decimal("750.00")
        assert summary.total_agency_amount == Decimal("8950.00")

    @pytest.mark.unit
    def test_empty_scope(self) -> None:
        summary = compute_summary([])

        assert summary.total_shipments == 0
        assert summary.total_revenue == Decimal("0")
        assert summary.total_agency_amount == Decimal("0")


_prices = st.decimals(min_value=Decimal("0"), max_value=Decimal("1000000"), places=2)
_weights = st.decimals(min_value=Decimal("0.001"), max_value=Decimal("80"), places=3)


@st.composite
def _lines(draw):
    nature = draw(st.sampled_from(list(ShipmentNature)))
    shipment_type = draw(st.sampled_from(list(ShipmentType))) if nature == ShipmentNature.MAIL else None
    return line(
        price=str(draw(_prices)),
        weight=str(draw(_weights)),
        nature=nature,
        type=shipment_type,
        driver_id=draw(st.one_of(st.none(), st.integers(min_value=1, max_value=5))),
    )


class TestReconciliation:
    @pytest.mark.unit
    @given(st.lists(_lines(), max_size=30))
    def test_payouts_always_add_up_to_revenue(self, lines) -> None:
        summary = compute_summary(lines)

        assert (
            summary.total_driver_distributions
            + summary.total_regulator_distribution
            + summary.total_agency_amount
        ) == summary.total_revenue
        assert summary.total_revenue == sum((item.price for item in lines), Decimal("0"))

    @pytest.mark.unit
    @given(st.lists(_lines(), max_size=30))
    def test_payouts_are_never_negative_parts(self, lines) -> None:
        summary = compute_summary(lines)

        assert summary.total_driver_distributions >= 0
        assert summary.total_regulator_distribution >= 0
