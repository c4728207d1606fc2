# app/modules/transfers/router.py
from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from app.config.database import get_db
from app.config.settings import settings
from app.core.auth.dependencies import get_actor
from app.core.auth.schemas import Actor
from app.core.exceptions import ValidationError
from app.shared.schemas.enums import LocationType, TransferStatus
from .service import TransferWorkflowService
from .schemas import (
    AvailabilityResponse, DeliverRequest, MarkReadyRequest, PickupRequest, PickupResponse,
    ProductSearchResponse, ReceiveRequest, SendTransferRequest, TransferActionResponse,
    TransferApprovalRequest, TransferCancellationRequest, TransferCollectionResponse,
    TransferListFilters, TransferListResponse, TransferRejectionRequest, TransferRequestCreate
)

router = APIRouter()


def parse_if_match(if_match: Optional[str] = Header(None, alias="If-Match")) -> Optional[int]:
    """Versión esperada desde If-Match; acepta 3, "3" y W/"3" """
    if if_match is None or not if_match.strip():
        return None

    raw = if_match.strip()
    if raw.startswith("W/"):
        raw = raw[2:]
    raw = raw.strip('"')
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"If-Match inválido: {if_match}", details={"ifMatch": if_match})


def idempotency_key_header(idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")) -> Optional[str]:
    if idempotency_key is None or not idempotency_key.strip():
        return None
    return idempotency_key.strip()


# ==================== CREACIÓN Y CONSULTAS ====================

@router.post("", response_model=TransferActionResponse, status_code=status.HTTP_201_CREATED)
def create_transfer_request(
    transfer_data: TransferRequestCreate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """
    Solicitar productos de otra ubicación

    **Funcionalidad:**
    - Crea la solicitud en estado PENDING
    - No reserva stock todavía (la reserva ocurre al aprobar)
    - Ambas ubicaciones deben pertenecer a la empresa del usuario
    """
    service = TransferWorkflowService(db)
    return service.create_transfer_request(transfer_data, actor)


@router.get("", response_model=TransferListResponse)
def list_transfers(
    page: int = Query(0, description="Página (base 0)"),
    size: int = Query(settings.default_page_size, description="Tamaño de página"),
    status_filter: Optional[TransferStatus] = Query(None, alias="status"),
    store_id: Optional[int] = Query(None, alias="storeId"),
    warehouse_id: Optional[int] = Query(None, alias="warehouseId"),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """
    Listado paginado de transferencias de la empresa

    Ordenado por fecha de creación descendente. Cada elemento incluye
    las acciones disponibles para el usuario actual.
    """
    service = TransferWorkflowService(db)
    filters = TransferListFilters(status=status_filter, store_id=store_id, warehouse_id=warehouse_id)
    return service.list_transfers(actor.company_id, filters, page, size, actor)


@router.get("/pending-approval", response_model=TransferCollectionResponse)
def get_pending_approval(
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """
    Solicitudes PENDING que el usuario puede aprobar

    **Orden:** prioridad (URGENT primero) y luego las más antiguas.
    """
    service = TransferWorkflowService(db)
    return service.list_pending_approval(actor.company_id, actor)


@router.get("/history", response_model=TransferCollectionResponse)
def get_transfer_history(
    location_id: Optional[int] = Query(None, alias="locationId"),
    location_type: Optional[LocationType] = Query(None, alias="locationType"),
    status_filter: Optional[TransferStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Historial de transferencias por ubicación y/o estado"""
    service = TransferWorkflowService(db)
    return service.get_history(actor.company_id, actor, location_id, location_type, status_filter)


@router.get("/availability", response_model=AvailabilityResponse)
def get_availability(
    location_type: LocationType = Query(..., alias="locationType"),
    location_id: int = Query(..., alias="locationId"),
    product_id: int = Query(..., alias="productId"),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """
    Cantidad disponible para transferir desde una ubicación

    Informativo: el valor definitivo se recalcula con bloqueo al aprobar.
    """
    service = TransferWorkflowService(db)
    return service.get_availability(actor, location_type, location_id, product_id)


@router.get("/products", response_model=ProductSearchResponse)
def search_products_for_transfer(
    text: Optional[str] = Query(None, alias="query", description="Texto a buscar en nombre o SKU"),
    store_id: Optional[int] = Query(None, alias="storeId"),
    warehouse_id: Optional[int] = Query(None, alias="warehouseId"),
    page: int = Query(0, description="Página (base 0)"),
    size: int = Query(settings.default_page_size, description="Tamaño de página"),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """
    Buscar productos para transferir desde una tienda o bodega

    **Funcionalidad:**
    - Exactamente uno de storeId o warehouseId (400 en otro caso)
    - Cada producto trae stock, reservado, en tránsito y disponible (nunca negativo)
    - Ordenado por stock descendente
    """
    service = TransferWorkflowService(db)
    return service.search_products_for_transfer(actor, text, store_id, warehouse_id, page, size)


@router.get("/{transfer_id}", response_model=TransferActionResponse)
def get_transfer(
    transfer_id: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Detalle de la solicitud con acciones disponibles"""
    service = TransferWorkflowService(db)
    return service.get_transfer(transfer_id, actor)


# ==================== TRANSICIONES ====================

@router.put("/{transfer_id}/approve", response_model=TransferActionResponse)
def approve_transfer(
    transfer_id: str,
    approval: TransferApprovalRequest,
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(idempotency_key_header),
    expected_version: Optional[int] = Depends(parse_if_match),
    db: Session = Depends(get_db)
):
    """
    Aprobar solicitud y reservar stock en origen

    **Validaciones:**
    - 0 < approvedQuantity ≤ cantidad solicitada
    - approvedQuantity ≤ disponible en origen (calculado con bloqueo)
    - Rutas GM_ONLY solo las aprueba FOUNDER/CEO/GENERAL_MANAGER
    """
    service = TransferWorkflowService(db)
    return service.approve(transfer_id, approval, actor, idempotency_key, expected_version)


@router.put("/{transfer_id}/reject", response_model=TransferActionResponse)
def reject_transfer(
    transfer_id: str,
    rejection: TransferRejectionRequest,
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(idempotency_key_header),
    expected_version: Optional[int] = Depends(parse_if_match),
    db: Session = Depends(get_db)
):
    service = TransferWorkflowService(db)
    return service.reject(transfer_id, rejection, actor, idempotency_key, expected_version)


@router.put("/{transfer_id}/cancel", response_model=TransferActionResponse)
def cancel_transfer(
    transfer_id: str,
    cancellation: TransferCancellationRequest,
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(idempotency_key_header),
    expected_version: Optional[int] = Depends(parse_if_match),
    db: Session = Depends(get_db)
):
    """Cancelar antes del despacho; libera la reserva si existía"""
    service = TransferWorkflowService(db)
    return service.cancel(transfer_id, cancellation, actor, idempotency_key, expected_version)


@router.put("/{transfer_id}/mark-ready", response_model=TransferActionResponse)
def mark_transfer_ready(
    transfer_id: str,
    ready: MarkReadyRequest,
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(idempotency_key_header),
    expected_version: Optional[int] = Depends(parse_if_match),
    db: Session = Depends(get_db)
):
    service = TransferWorkflowService(db)
    return service.mark_ready(transfer_id, ready, actor, idempotency_key, expected_version)


@router.put("/{transfer_id}/pickup", response_model=PickupResponse)
def pickup_transfer(
    transfer_id: str,
    pickup: PickupRequest,
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(idempotency_key_header),
    expected_version: Optional[int] = Depends(parse_if_match),
    db: Session = Depends(get_db)
):
    """
    Recogida por el transportista

    **Proceso:**
    1. Consume la reserva y descuenta el stock del origen
    2. Marca la solicitud IN_TRANSIT
    3. Devuelve deliveryQRCode para verificar la entrega en destino
    """
    service = TransferWorkflowService(db)
    return service.pickup(transfer_id, pickup, actor, idempotency_key, expected_version)


@router.put("/{transfer_id}/deliver", response_model=TransferActionResponse)
def deliver_transfer(
    transfer_id: str,
    delivery: DeliverRequest,
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(idempotency_key_header),
    expected_version: Optional[int] = Depends(parse_if_match),
    db: Session = Depends(get_db)
):
    """Entrega física en destino; el inventario no cambia hasta la recepción"""
    service = TransferWorkflowService(db)
    return service.deliver(transfer_id, delivery, actor, idempotency_key, expected_version)


@router.put("/{transfer_id}/receive", response_model=TransferActionResponse)
def receive_transfer(
    transfer_id: str,
    receipt: ReceiveRequest,
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(idempotency_key_header),
    expected_version: Optional[int] = Depends(parse_if_match),
    db: Session = Depends(get_db)
):
    """
    Confirmar recepción y acreditar inventario en destino

    **Cantidades:**
    - Se acredita receivedQuantity - damagedQuantity
    - El faltante (aprobado - recibido) queda registrado, no vuelve al origen
    """
    service = TransferWorkflowService(db)
    return service.receive(transfer_id, receipt, actor, idempotency_key, expected_version)


@router.post("/{transfer_id}/send", response_model=PickupResponse)
def approve_and_send_transfer(
    transfer_id: str,
    send: SendTransferRequest,
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(idempotency_key_header),
    expected_version: Optional[int] = Depends(parse_if_match),
    db: Session = Depends(get_db)
):
    """Aprobar, preparar y despachar en un solo paso (PENDING → IN_TRANSIT)"""
    service = TransferWorkflowService(db)
    return service.approve_and_send(transfer_id, send, actor, idempotency_key, expected_version)
