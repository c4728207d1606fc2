from datetime import datetime, timedelta
from typing import Optional
from jose import jwt, JWTError
from app.config.settings import settings

class AuthService:
    """Servicio de autenticación (emisión y verificación de tokens)"""

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Crear token de acceso"""
        to_encode = data.copy()

        if expires_delta:
            expire = datetime.utcnow() + expires_delta
        else:
            expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)

        to_encode.update({"exp": expire})

        if "company_id" not in to_encode:
            raise ValueError("company_id es requerido en el token")

        return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)

    @staticmethod
    def verify_token(token: str) -> Optional[dict]:
        """Verificar y decodificar token"""
        try:
            return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        except JWTError:
            return None

    @staticmethod
    def create_delivery_token(transfer_id: str, company_id: int, issued_at: datetime) -> str:
        """Token de verificación de entrega (contenido del QR) firmado con la clave de la app"""
        payload = {
            "purpose": "transfer_delivery",
            "transfer_id": transfer_id,
            "company_id": company_id,
            "iat": issued_at,
            "exp": issued_at + timedelta(hours=settings.delivery_token_expire_hours)
        }
        return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)

    @staticmethod
    def verify_delivery_token(token: str, transfer_id: str, company_id: int) -> bool:
        payload = AuthService.verify_token(token)
        if payload is None:
            return False
        return (
            payload.get("purpose") == "transfer_delivery"
            and payload.get("transfer_id") == transfer_id
            and payload.get("company_id") == company_id
        )
