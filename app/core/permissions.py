"""
Role based permissions

Every operator carries exactly one role. What a role may do is a fixed table;
services and route dependencies only ever ask "does this actor hold
permission X", never "is this actor an admin".
"""
from dataclasses import dataclass
from enum import Enum

from app.db.models.user import UserRole


class Permission(str, Enum):
    VIEW_SHIPMENTS = "view_shipments"
    CREATE_SHIPMENT = "create_shipment"
    EDIT_SHIPMENT = "edit_shipment"
    DELETE_SHIPMENT = "delete_shipment"
    CREATE_DEPARTURE = "create_departure"
    DELETE_DEPARTURE = "delete_departure"
    VALIDATE_DEPARTURE = "validate_departure"
    VIEW_FINANCE = "view_finance"
    VIEW_DISTRIBUTION = "view_distribution"
    EXPORT_DATA = "export_data"
    PRINT_WAYBILL = "print_waybill"


_ALL = frozenset(Permission)

ROLE_PERMISSIONS: dict[UserRole, frozenset[Permission]] = {
    UserRole.ADMIN: _ALL,
    UserRole.SUPERVISOR: _ALL,
    UserRole.OPERATIONAL_ACCOUNTANT: frozenset({
        Permission.VIEW_SHIPMENTS,
        Permission.VIEW_FINANCE,
        Permission.EXPORT_DATA,
        Permission.CREATE_DEPARTURE,
        Permission.DELETE_DEPARTURE,
        Permission.VALIDATE_DEPARTURE,
        Permission.PRINT_WAYBILL,
    }),
    # Counter staff register shipments and build departures but never see money
    UserRole.STAFF: frozenset({
        Permission.VIEW_SHIPMENTS,
        Permission.CREATE_SHIPMENT,
        Permission.CREATE_DEPARTURE,
        Permission.VALIDATE_DEPARTURE,
        Permission.PRINT_WAYBILL,
    }),
}


def role_has_permission(role: UserRole | str, permission: Permission) -> bool:
    """Unknown roles hold no permissions"""
    try:
        role = UserRole(role)
    except ValueError:
        return False
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


@dataclass(frozen=True)
class Actor:
    """The authenticated operator on whose behalf a service call runs"""

    user_id: int
    role: UserRole

    def can(self, permission: Permission) -> bool:
        return role_has_permission(self.role, permission)

    @property
    def sees_finance(self) -> bool:
        return self.can(Permission.VIEW_FINANCE)
