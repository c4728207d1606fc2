# app/modules/transfers/schemas.py
from pydantic import Field, validator
from typing import Optional, List
from datetime import datetime

from app.shared.database.models import TransferRequest
from app.shared.schemas.common import BaseResponse, CamelModel, LocationRef, PaginationInfo
from app.shared.schemas.enums import ConditionStatus, LocationType, TransferPriority, TransferStatus


# ==================== REQUESTS ====================

class TransferRequestCreate(CamelModel):
    product_id: int = Field(..., description="ID del producto")
    from_location_type: LocationType = Field(..., description="Tipo de ubicación origen: STORE o WAREHOUSE")
    from_location_id: int = Field(..., description="ID de ubicación origen")
    to_location_type: LocationType = Field(..., description="Tipo de ubicación destino: STORE o WAREHOUSE")
    to_location_id: int = Field(..., description="ID de ubicación destino")
    quantity: int = Field(..., description="Cantidad a transferir")
    priority: TransferPriority = Field(default=TransferPriority.MEDIUM, description="LOW, MEDIUM, HIGH, URGENT")
    item_name: Optional[str] = Field(None, max_length=255)
    item_sku: Optional[str] = Field(None, max_length=100)
    reason: Optional[str] = Field(None, max_length=500, description="Motivo de la solicitud")
    notes: Optional[str] = Field(None, max_length=500, description="Notas adicionales")

    @validator('from_location_type', 'to_location_type', 'priority', pre=True)
    def normalize_upper(cls, v):
        """Aceptar 'store', 'warehouse', 'high'... en minúsculas"""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "productId": 10,
                "fromLocationType": "WAREHOUSE",
                "fromLocationId": 1,
                "toLocationType": "STORE",
                "toLocationId": 2,
                "quantity": 50,
                "priority": "HIGH",
                "reason": "Reposición de exhibición"
            }
        }


class TransferApprovalRequest(CamelModel):
    approved_quantity: int = Field(..., description="Cantidad aprobada (≤ solicitada)")
    notes: Optional[str] = Field(None, max_length=500)


class TransferRejectionRequest(CamelModel):
    reason: str = Field(..., description="Motivo del rechazo")


class TransferCancellationRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)


class MarkReadyRequest(CamelModel):
    packed_by: str = Field(..., description="Persona que empacó el producto")
    notes: Optional[str] = Field(None, max_length=500)


class PickupRequest(CamelModel):
    carrier_name: str = Field(..., max_length=200)
    carrier_phone: Optional[str] = Field(None, max_length=20)
    carrier_vehicle: Optional[str] = Field(None, max_length=100)
    estimated_delivery_at: Optional[datetime] = None


class DeliverRequest(CamelModel):
    proof_of_delivery_url: Optional[str] = Field(None, max_length=500)
    condition_on_arrival: Optional[ConditionStatus] = None
    notes: Optional[str] = Field(None, max_length=500)

    @validator('condition_on_arrival', pre=True)
    def normalize_condition(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


class ReceiveRequest(CamelModel):
    received_quantity: int = Field(..., description="Cantidad recibida")
    damaged_quantity: int = Field(default=0, description="Cantidad recibida dañada")
    receiver_name: str = Field(..., max_length=200)
    receipt_notes: Optional[str] = None
    delivery_qr_code: Optional[str] = Field(None, alias="deliveryQRCode", description="Token del QR de entrega")


class SendTransferRequest(PickupRequest):
    """Aprobar y despachar en un solo paso"""
    approved_quantity: int = Field(..., description="Cantidad aprobada (≤ solicitada)")
    notes: Optional[str] = Field(None, max_length=500)


class TransferListFilters(CamelModel):
    status: Optional[TransferStatus] = None
    store_id: Optional[int] = None
    warehouse_id: Optional[int] = None


# ==================== RESPONSES ====================

class CarrierInfo(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    vehicle: Optional[str] = None


class TransferRequestOut(CamelModel):
    id: str
    company_id: int
    product_id: int
    from_location: LocationRef
    to_location: LocationRef
    requested_quantity: int
    approved_quantity: Optional[int] = None
    received_quantity: Optional[int] = None
    damaged_quantity: Optional[int] = None
    shortfall_quantity: Optional[int] = None
    shortfall_note: Optional[str] = None
    status: TransferStatus
    priority: TransferPriority
    item_name: Optional[str] = None
    item_sku: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    requested_by_user_id: int
    approved_by_user_id: Optional[int] = None
    packed_by: Optional[str] = None
    carrier: Optional[CarrierInfo] = None
    receiver_name: Optional[str] = None
    received_by_user_id: Optional[int] = None
    proof_of_delivery_url: Optional[str] = None
    condition_on_arrival: Optional[str] = None
    receipt_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    ready_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    estimated_delivery_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    transit_time_minutes: Optional[int] = None
    version: int

    @classmethod
    def from_model(cls, transfer: TransferRequest) -> "TransferRequestOut":
        carrier = None
        if transfer.carrier_name:
            carrier = CarrierInfo(
                name=transfer.carrier_name,
                phone=transfer.carrier_phone,
                vehicle=transfer.carrier_vehicle
            )

        return cls(
            id=transfer.id,
            company_id=transfer.company_id,
            product_id=transfer.product_id,
            from_location=LocationRef(
                id=transfer.from_location_id,
                type=transfer.from_location_type,
                name=transfer.from_location.name if transfer.from_location else None
            ),
            to_location=LocationRef(
                id=transfer.to_location_id,
                type=transfer.to_location_type,
                name=transfer.to_location.name if transfer.to_location else None
            ),
            requested_quantity=transfer.requested_quantity,
            approved_quantity=transfer.approved_quantity,
            received_quantity=transfer.received_quantity,
            damaged_quantity=transfer.damaged_quantity,
            shortfall_quantity=transfer.shortfall_quantity,
            shortfall_note=transfer.shortfall_note,
            status=transfer.status,
            priority=transfer.priority,
            item_name=transfer.item_name,
            item_sku=transfer.item_sku,
            reason=transfer.reason,
            notes=transfer.notes,
            requested_by_user_id=transfer.requested_by_user_id,
            approved_by_user_id=transfer.approved_by_user_id,
            packed_by=transfer.packed_by,
            carrier=carrier,
            receiver_name=transfer.receiver_name,
            received_by_user_id=transfer.received_by_user_id,
            proof_of_delivery_url=transfer.proof_of_delivery_url,
            condition_on_arrival=transfer.condition_on_arrival,
            receipt_notes=transfer.receipt_notes,
            rejection_reason=transfer.rejection_reason,
            cancellation_reason=transfer.cancellation_reason,
            created_at=transfer.created_at,
            updated_at=transfer.updated_at,
            approved_at=transfer.approved_at,
            rejected_at=transfer.rejected_at,
            ready_at=transfer.ready_at,
            shipped_at=transfer.shipped_at,
            estimated_delivery_at=transfer.estimated_delivery_at,
            delivered_at=transfer.delivered_at,
            completed_at=transfer.completed_at,
            cancelled_at=transfer.cancelled_at,
            transit_time_minutes=transfer.transit_time_minutes,
            version=transfer.version
        )


class TransferActionResponse(BaseResponse):
    request: TransferRequestOut
    available_actions: List[str] = Field(default_factory=list)


class PickupResponse(TransferActionResponse):
    delivery_qr_code: Optional[str] = Field(None, alias="deliveryQRCode")


class TransferListItem(CamelModel):
    transfer: TransferRequestOut
    available_actions: List[str] = Field(default_factory=list)


class TransferListResponse(BaseResponse):
    requests: List[TransferListItem]
    pagination: PaginationInfo


class TransferCollectionResponse(BaseResponse):
    requests: List[TransferRequestOut]
    count: int


class TransferableProduct(CamelModel):
    """Producto con stock en la ubicación origen y su disponible para transferir"""
    product_id: int
    name: str
    sku: str
    quantity: int = Field(..., description="Stock físico en la ubicación")
    reserved: int = Field(..., description="Reservado para ventas + transferencias")
    in_transit: int
    available_for_transfer: int = Field(..., description="Nunca negativo")


class ProductSearchFilters(CamelModel):
    query: Optional[str] = None
    from_location_type: LocationType
    from_location_id: int


class ProductSearchResponse(BaseResponse):
    products: List[TransferableProduct]
    pagination: PaginationInfo
    filters: ProductSearchFilters


class AvailabilityResponse(BaseResponse):
    location_type: LocationType
    location_id: int
    product_id: int
    current_quantity: int
    reserved_for_sales: int
    reserved_for_transfers: int
    in_transit_out: int
    open_outbound_requests: int
    available_for_transfer: int
