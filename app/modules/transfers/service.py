# app/modules/transfers/service.py
from datetime import datetime
from typing import Callable, Optional
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
import logging

from app.config.settings import settings
from app.core.auth.schemas import Actor
from app.core.exceptions import NotFoundError, PermissionDeniedError, StateConflictError, TransferError, ValidationError
from app.shared.database.models import TransferRequest, User
from app.shared.schemas.common import PaginationInfo
from app.shared.schemas.enums import CompanyRole, LocationType, TransferAction, TransferStatus
from app.shared.services.inventory_service import LocationInventoryStore

from .availability import AvailabilityCalculator
from .permissions import PermissionEngine
from .repository import TransferQuery, TransfersRepository
from .schemas import (
    AvailabilityResponse, DeliverRequest, MarkReadyRequest, PickupRequest, PickupResponse,
    ProductSearchFilters, ProductSearchResponse, ReceiveRequest, SendTransferRequest,
    TransferActionResponse, TransferApprovalRequest, TransferCancellationRequest,
    TransferCollectionResponse, TransferListFilters, TransferListItem, TransferListResponse,
    TransferRejectionRequest, TransferRequestCreate, TransferRequestOut, TransferableProduct
)
from .state_machine import TransferRequestStateMachine

logger = logging.getLogger(__name__)


class TransferWorkflowService:
    """
    Orquestador del flujo de transferencias.

    Cada operación de escritura es una unidad atómica: se bloquea la solicitud,
    se valida el permiso, se aplica la transición (con su efecto sobre el libro
    de existencias) y se hace commit. Ante cualquier error se hace rollback y
    el error se propaga tal cual.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.repository = TransfersRepository(db)
        self.inventory = LocationInventoryStore(db)
        self.availability = AvailabilityCalculator(db)
        self.permissions = PermissionEngine(route_lookup=self.repository.find_route)
        self.state_machine = TransferRequestStateMachine(self.inventory, self.availability, clock=clock)

    # ==================== CREACIÓN ====================

    def create_transfer_request(self, data: TransferRequestCreate, actor: Actor) -> TransferActionResponse:
        """Crear solicitud en PENDING validando que ambas ubicaciones sean de la empresa"""
        logger.info(
            f"📦 Creando transferencia - Usuario: {actor.user_id} | "
            f"{data.from_location_type.value}#{data.from_location_id} → "
            f"{data.to_location_type.value}#{data.to_location_id} | Producto: {data.product_id} x{data.quantity}"
        )

        try:
            source = self.repository.get_location(actor.company_id, data.from_location_type, data.from_location_id)
            destination = self.repository.get_location(actor.company_id, data.to_location_type, data.to_location_id)
            if source is None or destination is None:
                raise ValidationError(
                    "Ubicación origen o destino no pertenece a la empresa",
                    details={"fromLocationId": data.from_location_id, "toLocationId": data.to_location_id}
                )

            product = self.repository.get_product(actor.company_id, data.product_id)
            if product is None:
                raise NotFoundError(f"Producto {data.product_id} no encontrado")

            transfer = self.state_machine.create(
                company_id=actor.company_id,
                product_id=data.product_id,
                from_location_type=data.from_location_type.value,
                from_location_id=data.from_location_id,
                to_location_type=data.to_location_type.value,
                to_location_id=data.to_location_id,
                requested_quantity=data.quantity,
                requested_by_user_id=actor.user_id,
                priority=data.priority.value,
                item_name=data.item_name or product.name,
                item_sku=data.item_sku or product.sku,
                reason=data.reason,
                notes=data.notes
            )
            self.repository.add(transfer)
            self.db.commit()
        except TransferError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.exception(f"❌ Error inesperado en transferencia: {e}")
            raise

        logger.info(f"✅ Transferencia creada - ID: {transfer.id}")
        return self._action_response(transfer, actor, "Solicitud de transferencia creada")

    # ==================== TRANSICIONES ====================

    def approve(
        self,
        transfer_id: str,
        data: TransferApprovalRequest,
        actor: Actor,
        idempotency_key: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> TransferActionResponse:
        transfer = self._transition(
            transfer_id, actor, TransferAction.APPROVE,
            lambda t: self.state_machine.approve(t, data.approved_quantity, actor.user_id, data.notes),
            idempotency_key, expected_version
        )
        return self._action_response(transfer, actor, "Solicitud de transferencia aprobada")

    def reject(
        self,
        transfer_id: str,
        data: TransferRejectionRequest,
        actor: Actor,
        idempotency_key: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> TransferActionResponse:
        transfer = self._transition(
            transfer_id, actor, TransferAction.REJECT,
            lambda t: self.state_machine.reject(t, data.reason, actor.user_id),
            idempotency_key, expected_version
        )
        return self._action_response(transfer, actor, "Solicitud de transferencia rechazada")

    def cancel(
        self,
        transfer_id: str,
        data: TransferCancellationRequest,
        actor: Actor,
        idempotency_key: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> TransferActionResponse:
        transfer = self._transition(
            transfer_id, actor, TransferAction.CANCEL,
            lambda t: self.state_machine.cancel(t, data.reason, actor.user_id),
            idempotency_key, expected_version
        )
        return self._action_response(transfer, actor, "Solicitud de transferencia cancelada")

    def mark_ready(
        self,
        transfer_id: str,
        data: MarkReadyRequest,
        actor: Actor,
        idempotency_key: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> TransferActionResponse:
        transfer = self._transition(
            transfer_id, actor, TransferAction.MARK_READY,
            lambda t: self.state_machine.mark_ready(t, data.packed_by, data.notes),
            idempotency_key, expected_version
        )
        return self._action_response(transfer, actor, "Transferencia lista para recoger")

    def pickup(
        self,
        transfer_id: str,
        data: PickupRequest,
        actor: Actor,
        idempotency_key: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> PickupResponse:
        transfer = self._transition(
            transfer_id, actor, TransferAction.PICKUP,
            lambda t: self.state_machine.pickup(
                t, actor.user_id, data.carrier_name, data.carrier_phone,
                data.carrier_vehicle, data.estimated_delivery_at
            ),
            idempotency_key, expected_version
        )
        return PickupResponse(
            success=True,
            message="Transferencia recogida y en tránsito",
            request=TransferRequestOut.from_model(transfer),
            available_actions=self.permissions.sorted_actions(transfer, actor),
            delivery_qr_code=transfer.delivery_qr_code
        )

    def deliver(
        self,
        transfer_id: str,
        data: DeliverRequest,
        actor: Actor,
        idempotency_key: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> TransferActionResponse:
        condition = data.condition_on_arrival.value if data.condition_on_arrival else None
        transfer = self._transition(
            transfer_id, actor, TransferAction.DELIVER,
            lambda t: self.state_machine.deliver(t, data.proof_of_delivery_url, condition, data.notes),
            idempotency_key, expected_version
        )
        return self._action_response(transfer, actor, "Transferencia entregada")

    def receive(
        self,
        transfer_id: str,
        data: ReceiveRequest,
        actor: Actor,
        idempotency_key: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> TransferActionResponse:
        transfer = self._transition(
            transfer_id, actor, TransferAction.RECEIVE,
            lambda t: self.state_machine.receive(
                t, data.received_quantity, data.damaged_quantity, data.receiver_name,
                actor.user_id, data.receipt_notes, data.delivery_qr_code
            ),
            idempotency_key, expected_version
        )
        return self._action_response(transfer, actor, "Transferencia completada e inventario actualizado")

    def approve_and_send(
        self,
        transfer_id: str,
        data: SendTransferRequest,
        actor: Actor,
        idempotency_key: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> PickupResponse:
        """Aprobar, marcar lista y despachar en una sola transacción"""

        def apply(transfer: TransferRequest) -> None:
            user = self.db.get(User, actor.user_id)
            packed_by = user.full_name if user else f"Usuario {actor.user_id}"
            self.state_machine.approve(transfer, data.approved_quantity, actor.user_id, data.notes)
            self.state_machine.mark_ready(transfer, packed_by)
            self.state_machine.pickup(
                transfer, actor.user_id, data.carrier_name, data.carrier_phone,
                data.carrier_vehicle, data.estimated_delivery_at
            )

        transfer = self._transition(
            transfer_id, actor, TransferAction.APPROVE, apply,
            idempotency_key, expected_version,
            final_action=TransferAction.PICKUP
        )
        return PickupResponse(
            success=True,
            message="Transferencia aprobada y despachada",
            request=TransferRequestOut.from_model(transfer),
            available_actions=self.permissions.sorted_actions(transfer, actor),
            delivery_qr_code=transfer.delivery_qr_code
        )

    # ==================== CONSULTAS ====================

    def get_transfer(self, transfer_id: str, actor: Actor) -> TransferActionResponse:
        transfer = self._get_visible(transfer_id, actor)
        return self._action_response(transfer, actor, "")

    def list_transfers(
        self,
        company_id: int,
        filters: TransferListFilters,
        page: int,
        size: int,
        actor: Actor
    ) -> TransferListResponse:
        self._ensure_same_company(company_id, actor)
        self._validate_page(page, size)

        query = (
            TransferQuery(company_id)
            .with_status(filters.status)
            .touching_location(filters.store_id, LocationType.STORE if filters.store_id is not None else None)
            .touching_location(filters.warehouse_id, LocationType.WAREHOUSE if filters.warehouse_id is not None else None)
        )
        items, total = self.repository.list(query, page, size)

        return TransferListResponse(
            success=True,
            requests=[
                TransferListItem(
                    transfer=TransferRequestOut.from_model(item),
                    available_actions=self.permissions.sorted_actions(item, actor)
                )
                for item in items
            ],
            pagination=PaginationInfo.build(page, size, total)
        )

    def list_pending_approval(self, company_id: int, actor: Actor) -> TransferCollectionResponse:
        """Pendientes que el actor puede aprobar, por prioridad y antigüedad"""
        self._ensure_same_company(company_id, actor)

        if actor.is_gm_plus:
            query = TransferQuery(company_id)
        elif actor.role == CompanyRole.STORE_MANAGER and actor.managed_location_ids:
            query = TransferQuery(company_id).touching_any(actor.managed_location_ids)
        else:
            return TransferCollectionResponse(success=True, requests=[], count=0)

        pending = [
            item for item in self.repository.list_pending(query)
            if self.permissions.can_perform(item, actor, TransferAction.APPROVE)
        ]
        return TransferCollectionResponse(
            success=True,
            requests=[TransferRequestOut.from_model(item) for item in pending],
            count=len(pending)
        )

    def get_history(
        self,
        company_id: int,
        actor: Actor,
        location_id: Optional[int] = None,
        location_type: Optional[LocationType] = None,
        status: Optional[TransferStatus] = None
    ) -> TransferCollectionResponse:
        self._ensure_same_company(company_id, actor)
        query = TransferQuery(company_id).with_status(status).touching_location(location_id, location_type)
        items = self.repository.list_all(query)
        return TransferCollectionResponse(
            success=True,
            requests=[TransferRequestOut.from_model(item) for item in items],
            count=len(items)
        )

    def get_availability(
        self,
        actor: Actor,
        location_type: LocationType,
        location_id: int,
        product_id: int
    ) -> AvailabilityResponse:
        """Disponible para transferir (informativo, sin bloqueo)"""
        if self.repository.get_location(actor.company_id, location_type, location_id) is None:
            raise NotFoundError(f"Ubicación {location_id} no encontrada")

        breakdown = self.availability.breakdown(actor.company_id, location_id, product_id)
        return AvailabilityResponse(
            success=True,
            location_type=location_type,
            location_id=location_id,
            product_id=product_id,
            current_quantity=breakdown.current_quantity,
            reserved_for_sales=breakdown.reserved_for_sales,
            reserved_for_transfers=breakdown.reserved_for_transfers,
            in_transit_out=breakdown.in_transit_out,
            open_outbound_requests=breakdown.open_outbound_requests,
            available_for_transfer=breakdown.available_for_transfer
        )

    def search_products_for_transfer(
        self,
        actor: Actor,
        text: Optional[str],
        store_id: Optional[int],
        warehouse_id: Optional[int],
        page: int,
        size: int
    ) -> ProductSearchResponse:
        """Buscar productos de una tienda o bodega con su disponible para transferir"""
        if store_id is None and warehouse_id is None:
            raise ValidationError("Debe indicar storeId o warehouseId")
        if store_id is not None and warehouse_id is not None:
            raise ValidationError("No se puede indicar storeId y warehouseId a la vez")
        self._validate_page(page, size)

        if store_id is not None:
            location_type, location_id = LocationType.STORE, store_id
        else:
            location_type, location_id = LocationType.WAREHOUSE, warehouse_id

        if self.repository.get_location(actor.company_id, location_type, location_id) is None:
            raise NotFoundError(f"Ubicación {location_id} no encontrada")

        rows, total = self.repository.search_products_at_location(actor.company_id, location_id, text, page, size)

        products = []
        for product, record in rows:
            breakdown = self.availability.breakdown(actor.company_id, location_id, product.id, record=record)
            products.append(TransferableProduct(
                product_id=product.id,
                name=product.name,
                sku=product.sku,
                quantity=breakdown.current_quantity,
                reserved=breakdown.reserved_for_sales + breakdown.reserved_for_transfers,
                in_transit=breakdown.in_transit_out,
                available_for_transfer=breakdown.available_for_transfer
            ))

        logger.info(f"🔎 Búsqueda para transferir en {location_type.value}#{location_id}: {total} productos")
        return ProductSearchResponse(
            success=True,
            products=products,
            pagination=PaginationInfo.build(page, size, total),
            filters=ProductSearchFilters(
                query=text,
                from_location_type=location_type,
                from_location_id=location_id
            )
        )

    # ==================== AUXILIARES ====================

    @staticmethod
    def _validate_page(page: int, size: int) -> None:
        if page < 0:
            raise ValidationError("page no puede ser negativo")
        if size < 1 or size > settings.max_page_size:
            raise ValidationError(f"size debe estar entre 1 y {settings.max_page_size}")

    def _transition(
        self,
        transfer_id: str,
        actor: Actor,
        action: TransferAction,
        apply: Callable[[TransferRequest], object],
        idempotency_key: Optional[str],
        expected_version: Optional[int],
        final_action: Optional[TransferAction] = None
    ) -> TransferRequest:
        """
        ``final_action`` es la acción con la que ``apply`` deja la solicitud
        cuando encadena varias transiciones; es la que se compara al detectar
        un reintento con la misma clave de idempotencia.
        """
        final_action = final_action or action
        try:
            transfer = self.repository.get(transfer_id, actor.company_id, for_update=True)
            if transfer is None:
                raise NotFoundError(f"Transferencia {transfer_id} no encontrada")

            # Si el rol lo permite pero el estado no, la máquina de estados reporta el conflicto
            for required in dict.fromkeys((action, final_action)):
                if not self.permissions.role_allows(transfer, actor, required):
                    raise PermissionDeniedError(f"No tienes permiso para '{required.value}' en esta transferencia")

            if idempotency_key and transfer.last_idempotency_key == idempotency_key \
                    and transfer.last_action == final_action.value:
                logger.info(f"↩️ Transferencia {transfer_id}: '{action.value}' ya aplicada con la misma clave")
                self.db.rollback()
                return transfer

            if expected_version is not None and transfer.version != expected_version:
                raise StateConflictError(
                    f"La transferencia cambió (versión {transfer.version}, esperada {expected_version})",
                    details={"currentVersion": transfer.version, "expectedVersion": expected_version}
                )

            apply(transfer)
            transfer.last_idempotency_key = idempotency_key
            self.db.flush()
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"⚠️ Conflicto de concurrencia en transferencia {transfer_id} ({action.value})")
            raise StateConflictError("La transferencia o el inventario fueron modificados en paralelo; vuelve a consultar")
        except TransferError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.exception(f"❌ Error inesperado en transferencia: {e}")
            raise

        logger.info(f"✅ Transferencia {transfer.id}: '{action.value}' aplicada por usuario {actor.user_id} → {transfer.status}")
        return transfer

    def _get_visible(self, transfer_id: str, actor: Actor) -> TransferRequest:
        transfer = self.repository.get(transfer_id, actor.company_id)
        if transfer is None or not self.permissions.can_view(transfer, actor):
            raise NotFoundError(f"Transferencia {transfer_id} no encontrada")
        return transfer

    @staticmethod
    def _ensure_same_company(company_id: int, actor: Actor) -> None:
        if company_id != actor.company_id:
            raise NotFoundError("Empresa no encontrada")

    def _action_response(self, transfer: TransferRequest, actor: Actor, message: str) -> TransferActionResponse:
        return TransferActionResponse(
            success=True,
            message=message,
            request=TransferRequestOut.from_model(transfer),
            available_actions=self.permissions.sorted_actions(transfer, actor)
        )
