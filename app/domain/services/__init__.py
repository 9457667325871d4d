"""
Domain Services
"""
from app.domain.services.audit_service import AuditService
from app.domain.services.sequence_service import SequenceAllocator, SequenceScope
from app.domain.services.shipment_service import ShipmentService
from app.domain.services.departure_service import DepartureService
from app.domain.services.distribution_service import DistributionService
from app.domain.services.waybill_document_service import WaybillDocumentStore

__all__ = [
    "AuditService",
    "SequenceAllocator",
    "SequenceScope",
    "ShipmentService",
    "DepartureService",
    "DistributionService",
    "WaybillDocumentStore",
]
