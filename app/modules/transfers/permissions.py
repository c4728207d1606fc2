# app/modules/transfers/permissions.py
from typing import Callable, Dict, FrozenSet, List, Optional, Set

from app.core.auth.schemas import Actor
from app.shared.database.models import TransferRequest, TransferRoute
from app.shared.schemas.enums import (
    CompanyRole, LocationType, RouteApprovalPolicy, TransferAction, TransferStatus
)

# Acciones legales por estado (tabla de transiciones)
STATE_ACTIONS: Dict[TransferStatus, FrozenSet[TransferAction]] = {
    TransferStatus.PENDING: frozenset({TransferAction.APPROVE, TransferAction.REJECT, TransferAction.CANCEL}),
    TransferStatus.APPROVED: frozenset({TransferAction.MARK_READY, TransferAction.CANCEL}),
    TransferStatus.READY: frozenset({TransferAction.PICKUP, TransferAction.CANCEL}),
    TransferStatus.IN_TRANSIT: frozenset({TransferAction.DELIVER}),
    TransferStatus.DELIVERED: frozenset({TransferAction.RECEIVE}),
    TransferStatus.REJECTED: frozenset(),
    TransferStatus.CANCELLED: frozenset(),
    TransferStatus.COMPLETED: frozenset(),
}

# Orden estable para respuestas JSON
ACTION_ORDER: List[TransferAction] = list(TransferAction)

RouteLookup = Callable[[TransferRequest], Optional[TransferRoute]]


class PermissionEngine:
    """
    Matriz central de permisos sobre solicitudes de transferencia.

    Acciones disponibles = acciones legales para el estado ∩ acciones
    permitidas por rol / ubicación. Un actor de otra empresa no ve la
    solicitud y no tiene acciones.
    """

    def __init__(self, route_lookup: Optional[RouteLookup] = None):
        self.route_lookup = route_lookup

    def can_view(self, request: Optional[TransferRequest], actor: Optional[Actor]) -> bool:
        if request is None or actor is None:
            return False
        return request.company_id == actor.company_id

    def available_actions(self, request: Optional[TransferRequest], actor: Optional[Actor]) -> Set[TransferAction]:
        if not self.can_view(request, actor):
            return set()

        legal = STATE_ACTIONS.get(TransferStatus(request.status), frozenset())
        return {action for action in legal if self._role_allows(request, actor, action)}

    def sorted_actions(self, request: Optional[TransferRequest], actor: Optional[Actor]) -> List[str]:
        actions = self.available_actions(request, actor)
        return [action.value for action in ACTION_ORDER if action in actions]

    def can_perform(self, request: Optional[TransferRequest], actor: Optional[Actor], action: TransferAction) -> bool:
        return action in self.available_actions(request, actor)

    def role_allows(self, request: TransferRequest, actor: Actor, action: TransferAction) -> bool:
        """Permiso por rol, sin considerar el estado actual"""
        if not self.can_view(request, actor):
            return False
        return self._role_allows(request, actor, action)

    # ==================== MATRIZ POR ACCIÓN ====================

    def _role_allows(self, request: TransferRequest, actor: Actor, action: TransferAction) -> bool:
        if action in (TransferAction.APPROVE, TransferAction.REJECT):
            return self._can_decide(request, actor)
        if action == TransferAction.CANCEL:
            return self._can_cancel(request, actor)
        if action in (TransferAction.MARK_READY, TransferAction.PICKUP):
            return self._can_handle_location(actor, request.from_location_type, request.from_location_id)
        if action in (TransferAction.DELIVER, TransferAction.RECEIVE):
            return self._can_handle_location(actor, request.to_location_type, request.to_location_id)
        return False

    def _can_decide(self, request: TransferRequest, actor: Actor) -> bool:
        if actor.is_gm_plus:
            return True
        if not self._touches_managed_location(request, actor):
            return False

        route = self.route_lookup(request) if self.route_lookup else None
        if route is not None and route.is_active and route.approval_policy == RouteApprovalPolicy.GM_ONLY.value:
            return False
        return True

    def _can_cancel(self, request: TransferRequest, actor: Actor) -> bool:
        if actor.is_gm_plus or self._touches_managed_location(request, actor):
            return True

        if request.requested_by_user_id != actor.user_id:
            return False

        # Un EMPLOYEE solo cancela sus propias solicitudes aún pendientes;
        # CANCELLED se acepta para que un reintento de su cancelación no sea 403
        if actor.role == CompanyRole.EMPLOYEE:
            return request.status in (TransferStatus.PENDING.value, TransferStatus.CANCELLED.value)
        return True

    def _can_handle_location(self, actor: Actor, location_type: str, location_id: int) -> bool:
        if actor.is_gm_plus or actor.manages(location_id):
            return True
        return location_type == LocationType.WAREHOUSE.value and actor.can_write_warehouse(location_id)

    @staticmethod
    def _touches_managed_location(request: TransferRequest, actor: Actor) -> bool:
        return actor.manages(request.from_location_id) or actor.manages(request.to_location_id)
