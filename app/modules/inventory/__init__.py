"""
Módulo de Inventario - Ingreso y consulta de existencias por ubicación

Arquitectura:
- router.py: Endpoints de inventario
- service.py: Ingreso de stock con permisos por ubicación
- repository.py: Acceso a ubicaciones, productos y existencias
- schemas.py: Modelos de request/response
"""

from .router import router
from .service import InventoryService

__all__ = [
    "router",
    "InventoryService"
]
