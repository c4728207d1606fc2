from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import and_
import logging

from app.core.exceptions import InsufficientStockError, StateConflictError, ValidationError
from app.shared.database.models import InventoryRecord, InventoryMovement
from app.shared.schemas.enums import MovementType

logger = logging.getLogger(__name__)

class LocationInventoryStore:
    """
    Libro de existencias por (empresa, ubicación, producto).

    Todas las mutaciones se hacen sobre filas bloqueadas con ``lock_record``
    dentro de la transacción del llamador; este store nunca hace commit.
    Cada mutación deja una fila en ``inventory_movements``.

    Tiendas y bodegas se tratan igual: la ubicación es siempre (tipo, id).
    """

    def __init__(self, db: Session):
        self.db = db

    def get_record(self, company_id: int, location_id: int, product_id: int) -> Optional[InventoryRecord]:
        """Lectura sin bloqueo (uso informativo)"""
        return self.db.query(InventoryRecord).filter(
            and_(
                InventoryRecord.company_id == company_id,
                InventoryRecord.location_id == location_id,
                InventoryRecord.product_id == product_id
            )
        ).first()

    def lock_record(
        self,
        company_id: int,
        location_type: str,
        location_id: int,
        product_id: int
    ) -> InventoryRecord:
        """
        Obtener la fila con SELECT FOR UPDATE, creándola en cero si no existe.

        populate_existing() fuerza a releer la fila aunque ya esté en la sesión,
        así la validación siempre trabaja con los valores confirmados.
        """
        # Cambios pendientes de la misma transacción no deben perderse al releer
        self.db.flush()
        record = self._locked_query(company_id, location_id, product_id).first()
        if record is not None:
            return record

        record = InventoryRecord(
            company_id=company_id,
            location_id=location_id,
            location_type=location_type,
            product_id=product_id,
            current_quantity=0,
            reserved_for_sales=0,
            reserved_for_transfers=0
        )
        try:
            with self.db.begin_nested():
                self.db.add(record)
                self.db.flush()
        except IntegrityError:
            # Otra transacción creó la fila primero
            logger.info(
                f"Fila de inventario creada en paralelo: ubicación {location_id}, producto {product_id}"
            )
            record = self._locked_query(company_id, location_id, product_id).one()
        return record

    def _locked_query(self, company_id: int, location_id: int, product_id: int):
        return self.db.query(InventoryRecord).filter(
            and_(
                InventoryRecord.company_id == company_id,
                InventoryRecord.location_id == location_id,
                InventoryRecord.product_id == product_id
            )
        ).populate_existing().with_for_update()

    # ==================== MUTACIONES ====================

    def add_stock(self, record: InventoryRecord, quantity: int, user_id: int, notes: Optional[str] = None) -> InventoryRecord:
        """Ingreso de stock físico a la ubicación"""
        if quantity <= 0:
            raise ValidationError("La cantidad a ingresar debe ser mayor a cero")

        before = record.current_quantity
        record.current_quantity += quantity
        self._record_movement(record, MovementType.STOCK_ADDED, quantity, before, record.current_quantity,
                              user_id=user_id, notes=notes)
        return record

    def reserve_for_transfer(self, record: InventoryRecord, quantity: int, user_id: int, transfer_id: str) -> InventoryRecord:
        before = record.reserved_for_transfers
        if before + quantity + record.reserved_for_sales > record.current_quantity:
            raise InsufficientStockError(
                f"Reserva excede el stock físico. Stock: {record.current_quantity}, "
                f"reservado: {before + record.reserved_for_sales}, solicitado: {quantity}"
            )

        record.reserved_for_transfers = before + quantity
        self._record_movement(record, MovementType.TRANSFER_RESERVED, quantity, before, record.reserved_for_transfers,
                              user_id=user_id, transfer_id=transfer_id)
        return record

    def release_transfer_reservation(self, record: InventoryRecord, quantity: int, user_id: int, transfer_id: str) -> InventoryRecord:
        if record.reserved_for_transfers < quantity:
            raise StateConflictError(
                f"La reserva de transferencias ({record.reserved_for_transfers}) es menor a la cantidad a liberar ({quantity})"
            )

        before = record.reserved_for_transfers
        record.reserved_for_transfers -= quantity
        self._record_movement(record, MovementType.TRANSFER_RELEASED, quantity, before, record.reserved_for_transfers,
                              user_id=user_id, transfer_id=transfer_id)
        return record

    def withdraw_for_transfer(self, record: InventoryRecord, quantity: int, user_id: int, transfer_id: str) -> InventoryRecord:
        """Salida física: consume la reserva y descuenta el stock en un solo paso"""
        if record.current_quantity < quantity:
            raise InsufficientStockError(
                f"Stock insuficiente para despachar. Disponible: {record.current_quantity}, requerido: {quantity}",
                details={"currentQuantity": record.current_quantity, "required": quantity}
            )
        if record.reserved_for_transfers < quantity:
            raise StateConflictError(
                f"La reserva de transferencias ({record.reserved_for_transfers}) no cubre el despacho ({quantity})"
            )

        before = record.current_quantity
        record.current_quantity -= quantity
        record.reserved_for_transfers -= quantity
        self._record_movement(record, MovementType.TRANSFER_WITHDRAWN, quantity, before, record.current_quantity,
                              user_id=user_id, transfer_id=transfer_id)
        return record

    def receive_from_transfer(
        self,
        record: InventoryRecord,
        good_quantity: int,
        damaged_quantity: int,
        user_id: int,
        transfer_id: str
    ) -> InventoryRecord:
        """Entrada en destino: solo la cantidad en buen estado suma al stock"""
        before = record.current_quantity
        record.current_quantity += good_quantity
        self._record_movement(record, MovementType.TRANSFER_RECEIVED, good_quantity, before, record.current_quantity,
                              user_id=user_id, transfer_id=transfer_id)

        if damaged_quantity:
            self._record_movement(record, MovementType.TRANSFER_DAMAGED, damaged_quantity,
                                  record.current_quantity, record.current_quantity,
                                  user_id=user_id, transfer_id=transfer_id,
                                  notes="Unidades recibidas dañadas, no ingresan al stock")
        return record

    def record_shortfall(
        self,
        company_id: int,
        location_id: int,
        product_id: int,
        quantity: int,
        user_id: int,
        transfer_id: str,
        notes: str
    ) -> InventoryMovement:
        """Faltante despachado y no recibido; queda como nota sin conciliar, sin tocar el stock"""
        movement = InventoryMovement(
            company_id=company_id,
            location_id=location_id,
            product_id=product_id,
            movement_type=MovementType.TRANSFER_SHORTFALL.value,
            quantity=quantity,
            transfer_request_id=transfer_id,
            user_id=user_id,
            notes=notes
        )
        self.db.add(movement)
        return movement

    def _record_movement(
        self,
        record: InventoryRecord,
        movement_type: MovementType,
        quantity: int,
        before: int,
        after: int,
        user_id: Optional[int] = None,
        transfer_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> None:
        self.db.add(InventoryMovement(
            company_id=record.company_id,
            location_id=record.location_id,
            product_id=record.product_id,
            movement_type=movement_type.value,
            quantity=quantity,
            quantity_before=before,
            quantity_after=after,
            transfer_request_id=transfer_id,
            user_id=user_id,
            notes=notes
        ))
