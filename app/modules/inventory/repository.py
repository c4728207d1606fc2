from sqlalchemy.orm import Session
from sqlalchemy import and_
from typing import List, Optional

from app.shared.database.models import InventoryRecord, Location, Product
from app.shared.schemas.enums import LocationType

class InventoryRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_location(self, company_id: int, location_type: LocationType, location_id: int) -> Optional[Location]:
        """Ubicación de la empresa con el tipo indicado - FILTRADO POR COMPANY_ID"""
        return self.db.query(Location).filter(
            and_(
                Location.id == location_id,
                Location.company_id == company_id,
                Location.type == LocationType(location_type).value
            )
        ).first()

    def get_product(self, company_id: int, product_id: int) -> Optional[Product]:
        return self.db.query(Product).filter(
            and_(Product.id == product_id, Product.company_id == company_id)
        ).first()

    def get_location_records(self, company_id: int, location_id: int) -> List[InventoryRecord]:
        return self.db.query(InventoryRecord).filter(
            and_(
                InventoryRecord.company_id == company_id,
                InventoryRecord.location_id == location_id
            )
        ).order_by(InventoryRecord.product_id).all()
