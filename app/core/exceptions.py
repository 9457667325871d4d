"""
Custom Exception Hierarchy

Typed failures raised by the domain services. Every one of them is translated
into a JSON error envelope at the request boundary (see app.core.middleware);
none of them is meant to crash the process.
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    CONFLICT = "ERR_1003"
    UNAUTHORIZED = "ERR_1004"
    FORBIDDEN = "ERR_1005"
    INVALID_STATE = "ERR_1006"

    # Shipment errors (2xxx)
    SHIPMENT_NOT_FOUND = "ERR_2001"
    SHIPMENT_ALREADY_CONFIRMED = "ERR_2002"
    SHIPMENT_ALREADY_CANCELLED = "ERR_2003"
    SHIPMENT_LOCKED = "ERR_2004"
    SHIPMENT_NOT_ASSIGNABLE = "ERR_2005"
    SHIPMENT_NOT_MEMBER = "ERR_2006"

    # Departure errors (3xxx)
    DEPARTURE_NOT_FOUND = "ERR_3001"
    DEPARTURE_INVALID_STATUS = "ERR_3002"
    DEPARTURE_EMPTY = "ERR_3003"
    DEPARTURE_HAS_CANCELLED_SHIPMENT = "ERR_3004"

    # Reference data errors (4xxx)
    DRIVER_NOT_FOUND = "ERR_4001"
    VEHICLE_NOT_FOUND = "ERR_4002"

    # Numbering and documents (5xxx)
    SEQUENCE_CONFLICT = "ERR_5001"
    DOCUMENT_GENERATION_FAILED = "ERR_5002"
    DOCUMENT_NOT_FOUND = "ERR_5003"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationException(AppException):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )
        if field:
            self.details["field"] = field


# ==================== NotFound ====================


class NotFoundException(AppException):
    """Raised when a requested resource is not found"""

    def __init__(
        self,
        resource: str,
        identifier: Any,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class ShipmentNotFoundError(NotFoundException):
    def __init__(self, identifier: Any):
        super().__init__("Shipment", identifier, ErrorCode.SHIPMENT_NOT_FOUND)


class DepartureNotFoundError(NotFoundException):
    def __init__(self, departure_id: int):
        super().__init__("Departure", departure_id, ErrorCode.DEPARTURE_NOT_FOUND)


class DriverNotFoundError(NotFoundException):
    def __init__(self, driver_id: int):
        super().__init__("Driver", driver_id, ErrorCode.DRIVER_NOT_FOUND)


class VehicleNotFoundError(NotFoundException):
    def __init__(self, vehicle_id: int):
        super().__init__("Vehicle", vehicle_id, ErrorCode.VEHICLE_NOT_FOUND)


# ==================== InvalidState ====================


class InvalidStateException(AppException):
    """Raised when an operation is attempted against an entity in the wrong state"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_STATE,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=409,
            details=details
        )


class DepartureStatusError(InvalidStateException):
    """Raised when a departure has an invalid status for the operation"""

    def __init__(self, departure_id: int, current_status: str, required_status: str, operation: str):
        super().__init__(
            message=(
                f"Cannot {operation} departure {departure_id}: "
                f"status is '{current_status}', required '{required_status}'"
            ),
            error_code=ErrorCode.DEPARTURE_INVALID_STATUS,
            details={
                "departure_id": departure_id,
                "operation": operation,
                "current_status": current_status,
                "required_status": required_status,
            }
        )


class EmptyDepartureError(InvalidStateException):
    def __init__(self, departure_id: int):
        super().__init__(
            message=f"Cannot seal departure {departure_id} without shipments",
            error_code=ErrorCode.DEPARTURE_EMPTY,
            details={"departure_id": departure_id}
        )


class CancelledMemberError(InvalidStateException):
    """Raised when sealing a departure that still holds a cancelled shipment"""

    def __init__(self, departure_id: int, shipment_ids: list[int]):
        super().__init__(
            message=f"Cannot seal departure {departure_id} with cancelled shipments {shipment_ids}",
            error_code=ErrorCode.DEPARTURE_HAS_CANCELLED_SHIPMENT,
            details={"departure_id": departure_id, "shipment_ids": shipment_ids}
        )


class ShipmentAlreadyConfirmedError(InvalidStateException):
    def __init__(self, shipment_id: int):
        super().__init__(
            message=f"Shipment {shipment_id} is already confirmed",
            error_code=ErrorCode.SHIPMENT_ALREADY_CONFIRMED,
            details={"shipment_id": shipment_id}
        )


class ShipmentAlreadyCancelledError(InvalidStateException):
    def __init__(self, shipment_id: int):
        super().__init__(
            message=f"Shipment {shipment_id} is already cancelled",
            error_code=ErrorCode.SHIPMENT_ALREADY_CANCELLED,
            details={"shipment_id": shipment_id}
        )


class ShipmentLockedError(InvalidStateException):
    """Raised when a confirmed shipment is edited without the edit privilege"""

    def __init__(self, shipment_id: int):
        super().__init__(
            message=f"Shipment {shipment_id} is confirmed and locked against edits",
            error_code=ErrorCode.SHIPMENT_LOCKED,
            details={"shipment_id": shipment_id}
        )


class ShipmentAssignmentError(InvalidStateException):
    """Raised when shipments cannot be attached to a departure"""

    def __init__(self, departure_id: int, shipment_id: int, reason: str):
        super().__init__(
            message=f"Shipment {shipment_id} cannot be assigned to departure {departure_id}: {reason}",
            error_code=ErrorCode.SHIPMENT_NOT_ASSIGNABLE,
            details={"departure_id": departure_id, "shipment_id": shipment_id, "reason": reason}
        )


class ShipmentNotMemberError(InvalidStateException):
    def __init__(self, departure_id: int, shipment_id: int):
        super().__init__(
            message=f"Shipment {shipment_id} is not assigned to departure {departure_id}",
            error_code=ErrorCode.SHIPMENT_NOT_MEMBER,
            details={"departure_id": departure_id, "shipment_id": shipment_id}
        )


# ==================== Conflict ====================


class ConflictException(AppException):
    """Raised on uniqueness violations; the caller may retry the request"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONFLICT,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=409,
            details=details
        )
        self.details["retryable"] = True


class SequenceConflictError(ConflictException):
    """Raised when a freshly derived document number keeps colliding"""

    def __init__(self, scope: str, attempts: int):
        super().__init__(
            message=f"Could not allocate a unique {scope} number after {attempts} attempts",
            error_code=ErrorCode.SEQUENCE_CONFLICT,
            details={"scope": scope, "attempts": attempts}
        )


# ==================== Auth ====================


class UnauthorizedException(AppException):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            error_code=ErrorCode.UNAUTHORIZED,
            status_code=401,
        )


class ForbiddenException(AppException):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.FORBIDDEN,
            status_code=403,
            details=details
        )


class PermissionDeniedError(ForbiddenException):
    """Raised when the actor's role lacks a permission"""

    def __init__(self, role: str, permission: str):
        super().__init__(
            message=f"Role '{role}' does not have permission '{permission}'",
            details={"role": role, "required_permission": permission}
        )


# ==================== Documents ====================


class DocumentException(AppException):
    """Base exception for general waybill document errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int,
        departure_id: int | None = None,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details
        )
        if departure_id:
            self.details["departure_id"] = departure_id


class DocumentGenerationError(DocumentException):
    def __init__(self, departure_id: int, reason: str):
        super().__init__(
            message=f"General waybill generation failed for departure {departure_id}",
            error_code=ErrorCode.DOCUMENT_GENERATION_FAILED,
            status_code=500,
            departure_id=departure_id,
            details={"reason": reason}
        )


class DocumentNotFoundError(DocumentException):
    def __init__(self, departure_id: int):
        super().__init__(
            message=f"General waybill document not found for departure {departure_id}",
            error_code=ErrorCode.DOCUMENT_NOT_FOUND,
            status_code=404,
            departure_id=departure_id
        )
