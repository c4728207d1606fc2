# app/modules/transfers/availability.py
from pydantic import BaseModel
from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy import and_, func

from app.shared.database.models import InventoryRecord, TransferRequest
from app.shared.schemas.enums import TransferStatus

OPEN_OUTBOUND_STATUSES = (
    TransferStatus.APPROVED.value,
    TransferStatus.READY.value,
    TransferStatus.IN_TRANSIT.value,
)


class AvailabilityBreakdown(BaseModel):
    current_quantity: int
    reserved_for_sales: int
    reserved_for_transfers: int
    in_transit_out: int
    open_outbound_requests: int

    @property
    def available_for_transfer(self) -> int:
        available = (
            self.current_quantity
            - self.reserved_for_sales
            - self.reserved_for_transfers
            - self.in_transit_out
        )
        return max(0, available)


class AvailabilityCalculator:
    """
    Disponible para transferir = stock - reservado ventas - reservado transferencias - en tránsito.

    "En tránsito" solo cuenta solicitudes IN_TRANSIT cuyo stock todavía no salió
    del libro de origen (withdrawn_at vacío); las despachadas por este servicio
    ya descontaron current_quantity en la recogida.
    """

    def __init__(self, db: Session):
        self.db = db

    def breakdown(
        self,
        company_id: int,
        location_id: int,
        product_id: int,
        record: Optional[InventoryRecord] = None
    ) -> AvailabilityBreakdown:
        """
        Si se pasa ``record`` (ya bloqueado por el llamador) se usan sus valores,
        de lo contrario se lee la fila sin bloqueo.
        """
        if record is None:
            record = self.db.query(InventoryRecord).filter(
                and_(
                    InventoryRecord.company_id == company_id,
                    InventoryRecord.location_id == location_id,
                    InventoryRecord.product_id == product_id
                )
            ).first()

        open_filter = and_(
            TransferRequest.company_id == company_id,
            TransferRequest.from_location_id == location_id,
            TransferRequest.product_id == product_id,
            TransferRequest.status.in_(OPEN_OUTBOUND_STATUSES)
        )

        open_count = self.db.query(func.count(TransferRequest.id)).filter(open_filter).scalar() or 0

        # Solo filas despachadas antes de existir withdrawn_at; la recogida actual
        # siempre lo sella y descuenta current_quantity
        in_transit_out = self.db.query(
            func.coalesce(func.sum(TransferRequest.approved_quantity), 0)
        ).filter(
            open_filter,
            TransferRequest.status == TransferStatus.IN_TRANSIT.value,
            TransferRequest.withdrawn_at.is_(None)
        ).scalar() or 0

        if record is None:
            return AvailabilityBreakdown(
                current_quantity=0,
                reserved_for_sales=0,
                reserved_for_transfers=0,
                in_transit_out=int(in_transit_out),
                open_outbound_requests=int(open_count)
            )

        return AvailabilityBreakdown(
            current_quantity=record.current_quantity,
            reserved_for_sales=record.reserved_for_sales,
            reserved_for_transfers=record.reserved_for_transfers,
            in_transit_out=int(in_transit_out),
            open_outbound_requests=int(open_count)
        )

    def available(
        self,
        company_id: int,
        location_id: int,
        product_id: int,
        record: Optional[InventoryRecord] = None
    ) -> int:
        return self.breakdown(company_id, location_id, product_id, record).available_for_transfer
