"""
Response projection for operators without finance access

Every route passes its response through mask_financials; monetary fields are
nulled at any depth, including nested shipment lists, while weights and
counts stay visible.
"""
from typing import Any

from pydantic import BaseModel

from app.core.permissions import Actor

FINANCIAL_FIELDS = frozenset({
    "price",
    "declared_value",
    "total_price",
    "total_declared_value",
    "month_revenue",
    "total_revenue",
    "driver_amount",
    "total_amount",
    "regulator_amount",
    "agency_amount",
    "total_driver_distributions",
    "total_regulator_distribution",
    "total_agency_amount",
})


def _mask(value: Any) -> Any:
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if isinstance(value, dict):
        return {
            key: None if key in FINANCIAL_FIELDS else _mask(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_mask(item) for item in value]
    return value


def mask_financials(payload: Any, actor: Actor) -> Any:
    """Return ``payload`` unchanged for finance viewers, a masked copy otherwise"""
    if actor.sees_finance:
        return payload
    return _mask(payload)
