"""
Schemas and helpers shared by several route modules
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from app.core.exceptions import ValidationException
from app.db.models.shipment import ShipmentNature, ShipmentStatus, ShipmentType


class ActionResponse(BaseModel):
    success: bool
    message: str


class ShipmentResponse(BaseModel):
    """Shipment as returned by every endpoint, including departure member lists"""
    id: int
    waybill_number: str
    sender_name: str
    sender_phone: Optional[str] = None
    receiver_name: str
    receiver_phone: Optional[str] = None
    description: Optional[str] = None
    weight: Optional[Decimal] = None
    declared_value: Optional[Decimal] = None
    price: Optional[Decimal] = None
    route: Optional[str] = None
    nature: ShipmentNature
    type: Optional[ShipmentType] = None
    is_free: bool
    status: ShipmentStatus
    is_confirmed: bool
    confirmed_at: Optional[datetime] = None
    is_cancelled: bool
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    departure_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AuditEntryResponse(BaseModel):
    id: int
    action: str
    user_id: Optional[int] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaginatedShipmentsResponse(BaseModel):
    items: List[ShipmentResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


# ==================== Helpers ====================


def total_pages(total: int, page_size: int) -> int:
    return max(1, (total + page_size - 1) // page_size)


def parse_date_param(value: Optional[str], param_name: str, end_of_day: bool = False) -> Optional[datetime]:
    """Parse a YYYY-MM-DD query parameter; a malformed value is a 400"""
    if not value:
        return None
    try:
        dt = datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise ValidationException(
            f"Invalid date format for {param_name}, expected YYYY-MM-DD",
            field=param_name,
        )
    if end_of_day:
        dt = dt.replace(hour=23, minute=59, second=59, microsecond=999999)
    return dt
