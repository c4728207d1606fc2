# app/core/exceptions.py
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class TransferError(HTTPException):
    """Error de dominio del flujo de transferencias, con código estable para el cliente"""
    error_code = "TRANSFER_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=self.status_code, detail=detail)
        self.details = details or {}


class ValidationError(TransferError):
    """Entrada inválida: cantidades, ubicaciones, campos requeridos"""
    error_code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(TransferError):
    error_code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(TransferError):
    error_code = "PERMISSION_DENIED"
    status_code = status.HTTP_403_FORBIDDEN


class StateConflictError(TransferError):
    """La solicitud no está en el estado que exige la transición"""
    error_code = "STATE_CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class InsufficientStockError(TransferError):
    error_code = "INSUFFICIENT_STOCK"
    status_code = status.HTTP_409_CONFLICT
