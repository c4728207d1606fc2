from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.shared.database.models import User, UserLocationAssignment, WarehousePermission
from app.shared.schemas.enums import CompanyRole, WarehousePermissionType
from app.core.auth.schemas import Actor
from app.core.auth.service import AuthService

security = HTTPBearer()

class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

async def get_token_payload(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> dict:
    """Decodificar y validar el token Bearer"""
    payload = AuthService.verify_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Token inválido o expirado")

    if payload.get("user_id") is None or payload.get("company_id") is None:
        raise AuthenticationError("Payload del token inválido")

    return payload

def get_current_user(
    payload: dict = Depends(get_token_payload),
    db: Session = Depends(get_db)
) -> User:
    """Obtener usuario actual desde el token"""
    user = db.query(User).filter(User.id == payload["user_id"]).first()

    if user is None:
        raise AuthenticationError("Usuario no encontrado")

    if not user.is_active:
        raise AuthenticationError("Usuario inactivo")

    # El token no puede apuntar a otra empresa distinta a la del usuario
    if user.company_id != payload["company_id"]:
        raise AuthenticationError("Empresa del token no coincide con la del usuario")

    return user

def build_actor(db: Session, user: User) -> Actor:
    """Construir el contexto de autorización con asignaciones y permisos de bodega activos"""
    managed = db.query(UserLocationAssignment.location_id).filter(
        UserLocationAssignment.user_id == user.id,
        UserLocationAssignment.company_id == user.company_id,
        UserLocationAssignment.is_active.is_(True)
    ).all()

    grants = db.query(WarehousePermission.warehouse_id, WarehousePermission.permission_type).filter(
        WarehousePermission.user_id == user.id,
        WarehousePermission.company_id == user.company_id,
        WarehousePermission.is_active.is_(True)
    ).all()

    return Actor(
        user_id=user.id,
        company_id=user.company_id,
        role=CompanyRole(user.role),
        managed_location_ids=frozenset(row.location_id for row in managed),
        warehouse_grants={row.warehouse_id: WarehousePermissionType(row.permission_type) for row in grants}
    )

def get_actor(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Actor:
    """Dependency con el actor listo para el motor de permisos"""
    return build_actor(db, current_user)
