# app/modules/transfers/__init__.py
"""
Módulo de Transferencias - Flujo de solicitudes entre tiendas y bodegas

Ciclo de vida:
    PENDING → APPROVED → READY → IN_TRANSIT → DELIVERED → COMPLETED
    PENDING → REJECTED
    PENDING | APPROVED | READY → CANCELLED

Arquitectura:
- router.py: Endpoints de transferencias
- service.py: Orquestación transaccional (bloqueo, permisos, commit)
- state_machine.py: Transiciones y efectos sobre el inventario
- permissions.py: Acciones disponibles según rol, asignación y estado
- availability.py: Cálculo de stock disponible para transferir
- repository.py: Acceso a datos de transferencias
- schemas.py: Modelos de request/response
"""

from .router import router
from .service import TransferWorkflowService
from .repository import TransfersRepository

__all__ = [
    "router",
    "TransferWorkflowService",
    "TransfersRepository"
]
