"""
Lifecycle transition tables for departures and shipments
"""
from enum import Enum
from typing import Mapping, Sequence

from app.db.models.departure import DepartureStatus
from app.db.models.shipment import ShipmentStatus

# Departures only move forward
DEPARTURE_TRANSITIONS: dict[DepartureStatus, list[DepartureStatus]] = {
    DepartureStatus.OPEN: [DepartureStatus.SEALED],
    DepartureStatus.SEALED: [DepartureStatus.CLOSED],
    DepartureStatus.CLOSED: [],
}

SHIPMENT_TRANSITIONS: dict[ShipmentStatus, list[ShipmentStatus]] = {
    ShipmentStatus.PENDING: [
        ShipmentStatus.CONFIRMED,  # confirm
        ShipmentStatus.ASSIGNED,  # attached to an open departure
        ShipmentStatus.CANCELLED,
    ],
    ShipmentStatus.CONFIRMED: [
        ShipmentStatus.ASSIGNED,
        ShipmentStatus.CANCELLED,
    ],
    ShipmentStatus.ASSIGNED: [
        ShipmentStatus.CONFIRMED,  # confirm, seal, removal from the departure
        ShipmentStatus.CANCELLED,
    ],
    ShipmentStatus.CANCELLED: [],
}


def is_valid_transition(
    transitions: Mapping[Enum, Sequence[Enum]],
    current: Enum,
    target: Enum,
) -> bool:
    return target in transitions.get(current, [])


def sources_of(transitions: Mapping[Enum, Sequence[Enum]], target: Enum) -> list[Enum]:
    """States from which ``target`` is reachable in one step"""
    return [source for source, targets in transitions.items() if target in targets]
