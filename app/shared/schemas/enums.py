# app/shared/schemas/enums.py
from enum import Enum


class LocationType(str, Enum):
    """Tipos de ubicación"""
    STORE = "STORE"
    WAREHOUSE = "WAREHOUSE"


class CompanyRole(str, Enum):
    """Roles de empresa, de mayor a menor jerarquía"""
    FOUNDER = "FOUNDER"
    CEO = "CEO"
    GENERAL_MANAGER = "GENERAL_MANAGER"
    STORE_MANAGER = "STORE_MANAGER"
    EMPLOYEE = "EMPLOYEE"

    @property
    def is_gm_plus(self) -> bool:
        return self in (CompanyRole.FOUNDER, CompanyRole.CEO, CompanyRole.GENERAL_MANAGER)


class WarehousePermissionType(str, Enum):
    """Permiso por bodega"""
    READ = "READ"
    READ_WRITE = "READ_WRITE"


class TransferStatus(str, Enum):
    """Estados de una solicitud de transferencia"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    READY = "READY"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (TransferStatus.REJECTED, TransferStatus.CANCELLED, TransferStatus.COMPLETED)


class TransferPriority(str, Enum):
    """Prioridad de la solicitud (solo afecta el orden de pendientes)"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TransferAction(str, Enum):
    """Acciones sobre una solicitud existente"""
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    MARK_READY = "markReady"
    PICKUP = "pickup"
    DELIVER = "deliver"
    RECEIVE = "receive"


class ConditionStatus(str, Enum):
    """Condición del producto al llegar"""
    GOOD = "GOOD"
    DAMAGED = "DAMAGED"
    PARTIAL = "PARTIAL"
    MISSING = "MISSING"


class RouteApprovalPolicy(str, Enum):
    """Política de aprobación de un carril"""
    STANDARD = "STANDARD"
    GM_ONLY = "GM_ONLY"


class MovementType(str, Enum):
    """Tipos de movimiento del libro de existencias"""
    STOCK_ADDED = "STOCK_ADDED"
    TRANSFER_RESERVED = "TRANSFER_RESERVED"
    TRANSFER_RELEASED = "TRANSFER_RELEASED"
    TRANSFER_WITHDRAWN = "TRANSFER_WITHDRAWN"
    TRANSFER_RECEIVED = "TRANSFER_RECEIVED"
    TRANSFER_DAMAGED = "TRANSFER_DAMAGED"
    TRANSFER_SHORTFALL = "TRANSFER_SHORTFALL"
