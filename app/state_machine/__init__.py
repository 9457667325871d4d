"""
State Machine Module for departure and shipment lifecycles
"""
from app.state_machine.states import (
    DEPARTURE_TRANSITIONS,
    SHIPMENT_TRANSITIONS,
    is_valid_transition,
)

__all__ = ["DEPARTURE_TRANSITIONS", "SHIPMENT_TRANSITIONS", "is_valid_transition"]
