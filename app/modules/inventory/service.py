from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
import logging

from app.core.auth.schemas import Actor
from app.core.exceptions import NotFoundError, PermissionDeniedError, StateConflictError, TransferError
from app.shared.database.models import InventoryRecord
from app.shared.schemas.enums import LocationType
from app.shared.services.inventory_service import LocationInventoryStore

from .repository import InventoryRepository
from .schemas import (
    InventoryRecordOut, LocationInventoryResponse, StockAdditionRequest, StockAdditionResponse
)

logger = logging.getLogger(__name__)


class InventoryService:
    def __init__(self, db: Session):
        self.db = db
        self.repository = InventoryRepository(db)
        self.store = LocationInventoryStore(db)

    def add_stock(self, data: StockAdditionRequest, actor: Actor) -> StockAdditionResponse:
        """Ingreso de stock a una tienda o bodega"""
        logger.info(
            f"📥 Ingreso de stock - Usuario: {actor.user_id} | "
            f"{data.location_type.value}#{data.location_id} | Producto: {data.product_id} x{data.quantity}"
        )

        try:
            self._require_location(actor, data.location_type, data.location_id)
            if self.repository.get_product(actor.company_id, data.product_id) is None:
                raise NotFoundError(f"Producto {data.product_id} no encontrado")

            if not self._can_write(actor, data.location_type, data.location_id):
                raise PermissionDeniedError("No tienes permiso para ingresar stock en esta ubicación")

            record = self.store.lock_record(
                actor.company_id, data.location_type.value, data.location_id, data.product_id
            )
            self.store.add_stock(record, data.quantity, actor.user_id, data.notes)
            self.db.flush()
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise StateConflictError("El inventario fue modificado en paralelo; intenta de nuevo")
        except TransferError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.exception(f"❌ Error inesperado ingresando stock: {e}")
            raise

        logger.info(f"✅ Stock actualizado - Ubicación {data.location_id}: {record.current_quantity} unidades")
        return StockAdditionResponse(
            success=True,
            message="Stock ingresado correctamente",
            record=self._to_out(record)
        )

    def get_location_inventory(self, actor: Actor, location_type: LocationType, location_id: int) -> LocationInventoryResponse:
        self._require_location(actor, location_type, location_id)
        records = self.repository.get_location_records(actor.company_id, location_id)
        return LocationInventoryResponse(
            success=True,
            location_type=location_type,
            location_id=location_id,
            records=[self._to_out(record) for record in records]
        )

    def _require_location(self, actor: Actor, location_type: LocationType, location_id: int) -> None:
        if self.repository.get_location(actor.company_id, location_type, location_id) is None:
            raise NotFoundError(f"Ubicación {location_id} no encontrada")

    @staticmethod
    def _can_write(actor: Actor, location_type: LocationType, location_id: int) -> bool:
        if actor.is_gm_plus or actor.manages(location_id):
            return True
        return location_type == LocationType.WAREHOUSE and actor.can_write_warehouse(location_id)

    @staticmethod
    def _to_out(record: InventoryRecord) -> InventoryRecordOut:
        return InventoryRecordOut(
            location_type=record.location_type,
            location_id=record.location_id,
            product_id=record.product_id,
            current_quantity=record.current_quantity,
            reserved_for_sales=record.reserved_for_sales,
            reserved_for_transfers=record.reserved_for_transfers,
            version=record.version,
            updated_at=record.updated_at
        )
