# app/modules/transfers/repository.py
from sqlalchemy.orm import Session
from sqlalchemy import and_, or_, case, desc, asc, func
from typing import List, Optional, Tuple
import logging

from app.shared.database.models import InventoryRecord, Location, Product, TransferRequest, TransferRoute
from app.shared.schemas.enums import LocationType, TransferPriority, TransferStatus

logger = logging.getLogger(__name__)

PRIORITY_RANK = {
    TransferPriority.URGENT.value: 4,
    TransferPriority.HIGH.value: 3,
    TransferPriority.MEDIUM.value: 2,
    TransferPriority.LOW.value: 1,
}


class TransferQuery:
    """
    Filtros explícitos para listados de transferencias.

    Todos los criterios se combinan con AND y siempre incluyen la empresa.
    """

    def __init__(self, company_id: int):
        self.company_id = company_id
        self.conditions = [TransferRequest.company_id == company_id]

    def with_status(self, status: Optional[TransferStatus]) -> "TransferQuery":
        if status is not None:
            self.conditions.append(TransferRequest.status == TransferStatus(status).value)
        return self

    def touching_location(self, location_id: Optional[int], location_type: Optional[LocationType] = None) -> "TransferQuery":
        """Solicitudes donde la ubicación es origen o destino"""
        if location_id is None:
            return self

        as_source = TransferRequest.from_location_id == location_id
        as_destination = TransferRequest.to_location_id == location_id
        if location_type is not None:
            location_type = LocationType(location_type).value
            as_source = and_(as_source, TransferRequest.from_location_type == location_type)
            as_destination = and_(as_destination, TransferRequest.to_location_type == location_type)

        self.conditions.append(or_(as_source, as_destination))
        return self

    def touching_any(self, location_ids) -> "TransferQuery":
        location_ids = list(location_ids)
        self.conditions.append(or_(
            TransferRequest.from_location_id.in_(location_ids),
            TransferRequest.to_location_id.in_(location_ids)
        ))
        return self

    def criteria(self):
        return and_(*self.conditions)


class TransfersRepository:
    def __init__(self, db: Session):
        self.db = db

    # ==================== SOLICITUDES ====================

    def add(self, transfer: TransferRequest) -> TransferRequest:
        self.db.add(transfer)
        self.db.flush()
        return transfer

    def get(self, transfer_id: str, company_id: int, for_update: bool = False) -> Optional[TransferRequest]:
        """Solicitud dentro de la empresa; otra empresa se trata como inexistente"""
        query = self.db.query(TransferRequest).filter(
            and_(
                TransferRequest.id == transfer_id,
                TransferRequest.company_id == company_id
            )
        )
        if for_update:
            query = query.populate_existing().with_for_update()
        return query.first()

    def list(self, query: TransferQuery, page: int, size: int) -> Tuple[List[TransferRequest], int]:
        """Página ordenada por fecha de creación descendente"""
        criteria = query.criteria()
        total = self.db.query(func.count(TransferRequest.id)).filter(criteria).scalar() or 0

        items = (
            self.db.query(TransferRequest)
            .filter(criteria)
            .order_by(desc(TransferRequest.created_at), desc(TransferRequest.id))
            .offset(page * size)
            .limit(size)
            .all()
        )
        return items, total

    def list_all(self, query: TransferQuery) -> List[TransferRequest]:
        return (
            self.db.query(TransferRequest)
            .filter(query.criteria())
            .order_by(desc(TransferRequest.created_at), desc(TransferRequest.id))
            .all()
        )

    def list_pending(self, query: TransferQuery) -> List[TransferRequest]:
        """PENDING por prioridad (URGENT primero) y luego las más antiguas primero"""
        priority_rank = case(PRIORITY_RANK, value=TransferRequest.priority, else_=0)
        return (
            self.db.query(TransferRequest)
            .filter(query.with_status(TransferStatus.PENDING).criteria())
            .order_by(desc(priority_rank), asc(TransferRequest.created_at), asc(TransferRequest.id))
            .all()
        )

    # ==================== CATÁLOGOS EXTERNOS ====================

    def get_location(self, company_id: int, location_type: str, location_id: int) -> Optional[Location]:
        return self.db.query(Location).filter(
            and_(
                Location.id == location_id,
                Location.company_id == company_id,
                Location.type == LocationType(location_type).value
            )
        ).first()

    def get_product(self, company_id: int, product_id: int) -> Optional[Product]:
        return self.db.query(Product).filter(
            and_(
                Product.id == product_id,
                Product.company_id == company_id
            )
        ).first()

    def search_products_at_location(
        self,
        company_id: int,
        location_id: int,
        text: Optional[str],
        page: int,
        size: int
    ) -> Tuple[List[Tuple[Product, InventoryRecord]], int]:
        """Productos activos con fila de inventario en la ubicación, por nombre o SKU; mayor stock primero"""
        query = self.db.query(Product, InventoryRecord).join(
            InventoryRecord,
            and_(
                InventoryRecord.product_id == Product.id,
                InventoryRecord.company_id == Product.company_id
            )
        ).filter(
            and_(
                Product.company_id == company_id,
                Product.is_active.is_(True),
                InventoryRecord.location_id == location_id
            )
        )

        if text and text.strip():
            pattern = f"%{text.strip()}%"
            query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))

        total = query.count()
        rows = (
            query.order_by(desc(InventoryRecord.current_quantity), asc(Product.name), asc(Product.id))
            .offset(page * size)
            .limit(size)
            .all()
        )
        return rows, total

    def find_route(self, transfer: TransferRequest) -> Optional[TransferRoute]:
        return self.db.query(TransferRoute).filter(
            and_(
                TransferRoute.company_id == transfer.company_id,
                TransferRoute.from_location_type == transfer.from_location_type,
                TransferRoute.from_location_id == transfer.from_location_id,
                TransferRoute.to_location_type == transfer.to_location_type,
                TransferRoute.to_location_id == transfer.to_location_id
            )
        ).first()
