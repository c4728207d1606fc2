# app/modules/transfers/state_machine.py
from datetime import datetime
from typing import Callable, Optional
import logging

from app.core.auth.service import AuthService
from app.core.exceptions import InsufficientStockError, StateConflictError, ValidationError
from app.shared.database.models import TransferRequest
from app.shared.schemas.enums import TransferAction, TransferStatus
from app.shared.services.inventory_service import LocationInventoryStore
from .availability import AvailabilityCalculator

logger = logging.getLogger(__name__)

# Estados que ya tienen reserva hecha en el origen
RESERVED_STATUSES = (TransferStatus.APPROVED, TransferStatus.READY)
CANCELLABLE_STATUSES = (TransferStatus.PENDING, TransferStatus.APPROVED, TransferStatus.READY)


class TransferRequestStateMachine:
    """
    Ciclo de vida de una solicitud de transferencia.

    Cada método recibe la solicitud ya bloqueada por el llamador, valida el
    estado de origen, aplica el efecto sobre el libro de existencias y deja
    la solicitud en el nuevo estado. No hace commit: el servicio decide el
    límite transaccional.

        PENDING -> APPROVED -> READY -> IN_TRANSIT -> DELIVERED -> COMPLETED
        PENDING -> REJECTED
        PENDING | APPROVED | READY -> CANCELLED
    """

    def __init__(
        self,
        inventory: LocationInventoryStore,
        availability: AvailabilityCalculator,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.inventory = inventory
        self.availability = availability
        self.clock = clock

    # ==================== CREACIÓN ====================

    def create(
        self,
        company_id: int,
        product_id: int,
        from_location_type: str,
        from_location_id: int,
        to_location_type: str,
        to_location_id: int,
        requested_quantity: int,
        requested_by_user_id: int,
        **details
    ) -> TransferRequest:
        """Nueva solicitud en PENDING; no reserva stock todavía"""
        if requested_quantity is None or requested_quantity <= 0:
            raise ValidationError("La cantidad solicitada debe ser mayor a cero")

        # Tiendas y bodegas comparten tabla, el id basta para identificar la ubicación
        if from_location_id == to_location_id:
            raise ValidationError("La ubicación origen y destino no pueden ser la misma")

        now = self.clock()
        return TransferRequest(
            company_id=company_id,
            product_id=product_id,
            from_location_type=from_location_type,
            from_location_id=from_location_id,
            to_location_type=to_location_type,
            to_location_id=to_location_id,
            requested_quantity=requested_quantity,
            requested_by_user_id=requested_by_user_id,
            status=TransferStatus.PENDING.value,
            created_at=now,
            updated_at=now,
            **details
        )

    # ==================== TRANSICIONES ====================

    def approve(self, request: TransferRequest, approved_quantity: int, user_id: int, notes: Optional[str] = None) -> TransferRequest:
        self._require_status(request, TransferAction.APPROVE, TransferStatus.PENDING)

        if approved_quantity is None or approved_quantity <= 0:
            raise ValidationError("La cantidad aprobada debe ser mayor a cero")
        if approved_quantity > request.requested_quantity:
            raise ValidationError(
                f"La cantidad aprobada ({approved_quantity}) excede la solicitada ({request.requested_quantity})"
            )

        record = self.inventory.lock_record(
            request.company_id, request.from_location_type, request.from_location_id, request.product_id
        )
        available = self.availability.available(
            request.company_id, request.from_location_id, request.product_id, record=record
        )
        if approved_quantity > available:
            raise InsufficientStockError(
                f"Stock insuficiente en origen. Disponible: {available}, aprobado: {approved_quantity}",
                details={"available": available, "approvedQuantity": approved_quantity}
            )

        self.inventory.reserve_for_transfer(record, approved_quantity, user_id, request.id)

        now = self.clock()
        request.approved_quantity = approved_quantity
        request.approved_by_user_id = user_id
        request.approved_at = now
        self._append_notes(request, notes)
        return self._move(request, TransferStatus.APPROVED, TransferAction.APPROVE, now)

    def reject(self, request: TransferRequest, reason: str, user_id: int) -> TransferRequest:
        self._require_status(request, TransferAction.REJECT, TransferStatus.PENDING)

        if not reason or not reason.strip():
            raise ValidationError("El motivo de rechazo es requerido")

        now = self.clock()
        request.rejection_reason = reason.strip()
        request.approved_by_user_id = user_id
        request.rejected_at = now
        return self._move(request, TransferStatus.REJECTED, TransferAction.REJECT, now)

    def cancel(self, request: TransferRequest, reason: Optional[str], user_id: int) -> TransferRequest:
        self._require_status(request, TransferAction.CANCEL, *CANCELLABLE_STATUSES)

        # Liberar la reserva junto con el cambio de estado
        if TransferStatus(request.status) in RESERVED_STATUSES and request.approved_quantity:
            record = self.inventory.lock_record(
                request.company_id, request.from_location_type, request.from_location_id, request.product_id
            )
            self.inventory.release_transfer_reservation(record, request.approved_quantity, user_id, request.id)

        now = self.clock()
        request.cancellation_reason = reason.strip() if reason else None
        request.cancelled_at = now
        return self._move(request, TransferStatus.CANCELLED, TransferAction.CANCEL, now)

    def mark_ready(self, request: TransferRequest, packed_by: str, notes: Optional[str] = None) -> TransferRequest:
        self._require_status(request, TransferAction.MARK_READY, TransferStatus.APPROVED)

        if not request.approved_quantity:
            raise StateConflictError("La solicitud no tiene cantidad aprobada")
        if not packed_by or not packed_by.strip():
            raise ValidationError("packedBy es requerido")

        now = self.clock()
        request.packed_by = packed_by.strip()
        request.ready_at = now
        self._append_notes(request, notes)
        return self._move(request, TransferStatus.READY, TransferAction.MARK_READY, now)

    def pickup(
        self,
        request: TransferRequest,
        user_id: int,
        carrier_name: str,
        carrier_phone: Optional[str] = None,
        carrier_vehicle: Optional[str] = None,
        estimated_delivery_at: Optional[datetime] = None
    ) -> TransferRequest:
        """Salida física: consume la reserva, descuenta origen y genera el token de entrega"""
        self._require_status(request, TransferAction.PICKUP, TransferStatus.READY)

        if not carrier_name or not carrier_name.strip():
            raise ValidationError("carrierName es requerido")

        record = self.inventory.lock_record(
            request.company_id, request.from_location_type, request.from_location_id, request.product_id
        )
        self.inventory.withdraw_for_transfer(record, request.approved_quantity, user_id, request.id)

        now = self.clock()
        request.carrier_name = carrier_name.strip()
        request.carrier_phone = carrier_phone
        request.carrier_vehicle = carrier_vehicle
        request.estimated_delivery_at = estimated_delivery_at
        request.shipped_at = now
        request.withdrawn_at = now
        request.delivery_qr_code = AuthService.create_delivery_token(request.id, request.company_id, now)
        return self._move(request, TransferStatus.IN_TRANSIT, TransferAction.PICKUP, now)

    def deliver(
        self,
        request: TransferRequest,
        proof_of_delivery_url: Optional[str] = None,
        condition_on_arrival: Optional[str] = None,
        notes: Optional[str] = None
    ) -> TransferRequest:
        """Cambio de custodia únicamente; el inventario no se toca"""
        self._require_status(request, TransferAction.DELIVER, TransferStatus.IN_TRANSIT)

        now = self.clock()
        request.proof_of_delivery_url = proof_of_delivery_url
        request.condition_on_arrival = condition_on_arrival
        request.delivered_at = now
        self._append_notes(request, notes)
        return self._move(request, TransferStatus.DELIVERED, TransferAction.DELIVER, now)

    def receive(
        self,
        request: TransferRequest,
        received_quantity: int,
        damaged_quantity: int,
        receiver_name: str,
        user_id: int,
        receipt_notes: Optional[str] = None,
        delivery_qr_code: Optional[str] = None
    ) -> TransferRequest:
        self._require_status(request, TransferAction.RECEIVE, TransferStatus.DELIVERED)

        damaged_quantity = damaged_quantity or 0
        if received_quantity is None or received_quantity < 0 or damaged_quantity < 0:
            raise ValidationError("Las cantidades recibidas no pueden ser negativas")
        if damaged_quantity > received_quantity:
            raise ValidationError(
                f"La cantidad dañada ({damaged_quantity}) excede la recibida ({received_quantity})"
            )
        if received_quantity > request.approved_quantity:
            raise ValidationError(
                f"La cantidad recibida ({received_quantity}) excede la aprobada ({request.approved_quantity})"
            )
        if not receiver_name or not receiver_name.strip():
            raise ValidationError("receiverName es requerido")

        if delivery_qr_code is not None:
            if delivery_qr_code != request.delivery_qr_code or not AuthService.verify_delivery_token(
                delivery_qr_code, request.id, request.company_id
            ):
                raise ValidationError("Código QR de entrega inválido")

        good_quantity = received_quantity - damaged_quantity
        record = self.inventory.lock_record(
            request.company_id, request.to_location_type, request.to_location_id, request.product_id
        )
        self.inventory.receive_from_transfer(record, good_quantity, damaged_quantity, user_id, request.id)

        shortfall = request.approved_quantity - received_quantity
        if shortfall > 0:
            note = (
                f"Faltante sin conciliar: {shortfall} de {request.approved_quantity} unidades despachadas "
                f"no fueron recibidas en destino"
            )
            request.shortfall_quantity = shortfall
            request.shortfall_note = note
            self.inventory.record_shortfall(
                request.company_id, request.to_location_id, request.product_id,
                shortfall, user_id, request.id, note
            )
            logger.warning(f"⚠️ Transferencia {request.id}: {note}")
        else:
            request.shortfall_quantity = 0

        now = self.clock()
        request.received_quantity = received_quantity
        request.damaged_quantity = damaged_quantity
        request.receiver_name = receiver_name.strip()
        request.received_by_user_id = user_id
        request.receipt_notes = receipt_notes
        request.completed_at = now
        return self._move(request, TransferStatus.COMPLETED, TransferAction.RECEIVE, now)

    # ==================== AUXILIARES ====================

    @staticmethod
    def _require_status(request: TransferRequest, action: TransferAction, *allowed: TransferStatus) -> None:
        current = TransferStatus(request.status)
        if current in allowed:
            return

        if current.is_terminal:
            raise StateConflictError(
                f"La solicitud ya fue resuelta ({current.value}); no se puede aplicar '{action.value}'",
                details={"currentStatus": current.value, "action": action.value}
            )
        raise StateConflictError(
            f"No se puede aplicar '{action.value}' a una solicitud en estado {current.value}",
            details={
                "currentStatus": current.value,
                "action": action.value,
                "expectedStatus": [status.value for status in allowed]
            }
        )

    @staticmethod
    def _append_notes(request: TransferRequest, notes: Optional[str]) -> None:
        if not notes or not notes.strip():
            return
        request.notes = f"{request.notes}\n{notes.strip()}" if request.notes else notes.strip()

    @staticmethod
    def _move(request: TransferRequest, status: TransferStatus, action: TransferAction, now: datetime) -> TransferRequest:
        logger.info(f"🔄 Transferencia {request.id}: {request.status} → {status.value}")
        request.status = status.value
        request.last_action = action.value
        request.updated_at = now
        return request
