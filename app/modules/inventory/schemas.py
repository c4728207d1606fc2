from pydantic import Field, validator
from typing import List, Optional
from datetime import datetime

from app.shared.schemas.common import BaseResponse, CamelModel
from app.shared.schemas.enums import LocationType


class StockAdditionRequest(CamelModel):
    location_type: LocationType = Field(..., description="STORE o WAREHOUSE")
    location_id: int
    product_id: int
    quantity: int = Field(..., description="Unidades a ingresar (> 0)")
    notes: Optional[str] = Field(None, max_length=500)

    @validator('location_type', pre=True)
    def normalize_location_type(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "locationType": "WAREHOUSE",
                "locationId": 1,
                "productId": 10,
                "quantity": 100,
                "notes": "Ingreso de proveedor"
            }
        }


class InventoryRecordOut(CamelModel):
    location_type: LocationType
    location_id: int
    product_id: int
    current_quantity: int
    reserved_for_sales: int
    reserved_for_transfers: int
    version: int
    updated_at: Optional[datetime] = None


class StockAdditionResponse(BaseResponse):
    record: InventoryRecordOut


class LocationInventoryResponse(BaseResponse):
    location_type: LocationType
    location_id: int
    records: List[InventoryRecordOut]
