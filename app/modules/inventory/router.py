from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.core.auth.dependencies import get_actor
from app.core.auth.schemas import Actor
from app.shared.schemas.enums import LocationType
from .service import InventoryService
from .schemas import LocationInventoryResponse, StockAdditionRequest, StockAdditionResponse

router = APIRouter()

@router.post("/stock", response_model=StockAdditionResponse)
def add_stock(
    stock_data: StockAdditionRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """
    Ingresar stock físico a una ubicación

    **Permisos:**
    - FOUNDER / CEO / GENERAL_MANAGER en cualquier ubicación de la empresa
    - STORE_MANAGER en sus ubicaciones asignadas
    - Permiso READ_WRITE sobre la bodega
    """
    service = InventoryService(db)
    return service.add_stock(stock_data, actor)

@router.get("/stock", response_model=LocationInventoryResponse)
def get_location_inventory(
    location_type: LocationType = Query(..., alias="locationType"),
    location_id: int = Query(..., alias="locationId"),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Existencias y reservas de una ubicación"""
    service = InventoryService(db)
    return service.get_location_inventory(actor, location_type, location_id)
