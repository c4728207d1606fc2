from pydantic import BaseModel, Field
from typing import Dict, FrozenSet

from app.shared.schemas.enums import CompanyRole, WarehousePermissionType


class Actor(BaseModel):
    """
    Contexto de autorización del usuario que llama.

    Se construye a partir del token y de las asignaciones del usuario;
    el motor de permisos solo trabaja con este objeto.
    """
    user_id: int
    company_id: int
    role: CompanyRole
    managed_location_ids: FrozenSet[int] = Field(default_factory=frozenset)
    warehouse_grants: Dict[int, WarehousePermissionType] = Field(default_factory=dict)

    @property
    def is_gm_plus(self) -> bool:
        return self.role.is_gm_plus

    def manages(self, location_id: int) -> bool:
        return self.role == CompanyRole.STORE_MANAGER and location_id in self.managed_location_ids

    def can_write_warehouse(self, warehouse_id: int) -> bool:
        return self.warehouse_grants.get(warehouse_id) == WarehousePermissionType.READ_WRITE

    class Config:
        frozen = True
