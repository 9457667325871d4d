"""
Distribution rules - revenue split between drivers, the regulator and the agency

Pure functions over an in-memory snapshot of shipments; no database access.
All arithmetic and weight comparisons use Decimal, so 40.00 kg is eligible and
40.01 kg is not, with no float rounding at the boundaries.

Eligibility:
    driver      parcel, weight <= 40 kg, departure has a driver     60 % of price
    regulator   parcel, weight <= 50 kg                             5 % of the summed price
                mail/standard, weight <= 0.1 kg
                mail/express, 0.1 kg < weight <= 2 kg
    agency      revenue of every in-scope shipment minus the two payouts above
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from app.db.models.shipment import ShipmentNature, ShipmentType

DRIVER_SHARE_RATE = Decimal("0.60")
REGULATOR_SHARE_RATE = Decimal("0.05")

DRIVER_MAX_PARCEL_WEIGHT = Decimal("40")
REGULATOR_MAX_PARCEL_WEIGHT = Decimal("50")
MAIL_STANDARD_MAX_WEIGHT = Decimal("0.1")
MAIL_EXPRESS_MIN_WEIGHT = Decimal("0.1")  # exclusive
MAIL_EXPRESS_MAX_WEIGHT = Decimal("2")

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class DistributionLine:
    """One non-cancelled shipment of a closed departure"""

    shipment_id: int
    waybill_number: str
    nature: ShipmentNature
    type: Optional[ShipmentType]
    weight: Optional[Decimal]
    price: Decimal
    departure_id: int
    sealed_at: datetime
    driver_id: Optional[int]


def is_driver_eligible(shipment) -> bool:
    """Parcel up to 40 kg inclusive; a shipment without weight is never eligible"""
    if shipment.weight is None:
        return False
    return shipment.nature == ShipmentNature.PARCEL and shipment.weight <= DRIVER_MAX_PARCEL_WEIGHT


def is_regulator_eligible(shipment) -> bool:
    weight = shipment.weight
    if weight is None:
        return False
    if shipment.nature == ShipmentNature.PARCEL:
        return weight <= REGULATOR_MAX_PARCEL_WEIGHT
    if shipment.nature == ShipmentNature.MAIL:
        if shipment.type == ShipmentType.STANDARD:
            return weight <= MAIL_STANDARD_MAX_WEIGHT
        if shipment.type == ShipmentType.EXPRESS:
            return MAIL_EXPRESS_MIN_WEIGHT < weight <= MAIL_EXPRESS_MAX_WEIGHT
    return False


def driver_share(price: Decimal) -> Decimal:
    return to_money(price * DRIVER_SHARE_RATE)


@dataclass
class DriverShareLine:
    line: DistributionLine
    driver_amount: Decimal


@dataclass
class DriverPayout:
    driver_id: int
    total_amount: Decimal = ZERO
    shipments: list[DriverShareLine] = field(default_factory=list)

    @property
    def shipment_count(self) -> int:
        return len(self.shipments)


@dataclass
class RegulatorPayout:
    total_revenue: Decimal
    regulator_amount: Decimal
    shipments: list[DistributionLine]

    @property
    def shipment_count(self) -> int:
        return len(self.shipments)


@dataclass
class AgencyPayout:
    total_revenue: Decimal
    total_driver_distributions: Decimal
    total_regulator_distribution: Decimal
    agency_amount: Decimal
    shipment_count: int


@dataclass
class DistributionSummary:
    total_driver_distributions: Decimal
    total_regulator_distribution: Decimal
    total_agency_amount: Decimal
    total_revenue: Decimal
    total_shipments: int


def compute_driver_payouts(
    lines: Iterable[DistributionLine],
    driver_id: Optional[int] = None,
) -> list[DriverPayout]:
    """Per-driver payouts in order of first appearance; departures without a driver pay nobody"""
    payouts: dict[int, DriverPayout] = {}
    for line in lines:
        if line.driver_id is None or not is_driver_eligible(line):
            continue
        if driver_id is not None and line.driver_id != driver_id:
            continue
        payout = payouts.setdefault(line.driver_id, DriverPayout(driver_id=line.driver_id))
        amount = driver_share(line.price)
        payout.shipments.append(DriverShareLine(line=line, driver_amount=amount))
        payout.total_amount += amount
    return list(payouts.values())


def compute_regulator_payout(lines: Iterable[DistributionLine]) -> RegulatorPayout:
    eligible = [line for line in lines if is_regulator_eligible(line)]
    revenue = sum((line.price for line in eligible), ZERO)
    return RegulatorPayout(
        total_revenue=revenue,
        regulator_amount=to_money(revenue * REGULATOR_SHARE_RATE),
        shipments=eligible,
    )


def compute_agency_payout(lines: Iterable[DistributionLine]) -> AgencyPayout:
    """Residual after the driver and regulator payouts, over every in-scope shipment"""
    lines = list(lines)
    revenue = sum((line.price for line in lines), ZERO)
    driver_total = sum((p.total_amount for p in compute_driver_payouts(lines)), ZERO)
    regulator_total = compute_regulator_payout(lines).regulator_amount
    return AgencyPayout(
        total_revenue=revenue,
        total_driver_distributions=driver_total,
        total_regulator_distribution=regulator_total,
        agency_amount=revenue - driver_total - regulator_total,
        shipment_count=len(lines),
    )


def compute_summary(lines: Iterable[DistributionLine]) -> DistributionSummary:
    lines = list(lines)
    driver_total = sum((p.total_amount for p in compute_driver_payouts(lines)), ZERO)
    regulator = compute_regulator_payout(lines)
    agency = compute_agency_payout(lines)
    return DistributionSummary(
        total_driver_distributions=driver_total,
        total_regulator_distribution=regulator.regulator_amount,
        total_agency_amount=agency.agency_amount,
        total_revenue=agency.total_revenue,
        total_shipments=agency.shipment_count,
    )
