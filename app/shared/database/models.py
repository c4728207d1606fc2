# app/shared/database/models.py
import uuid

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text,
    ForeignKey, UniqueConstraint, CheckConstraint, Index,
    func
)
from sqlalchemy.orm import relationship

from app.config.database import Base

# =====================================================
# MIXIN PARA TIMESTAMPS
# =====================================================
class TimestampMixin:
    """Mixin que agrega campos created_at y updated_at"""
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=False, server_default=func.current_timestamp(), onupdate=func.current_timestamp())


# =====================================================
# MODELOS MULTITENANT
# =====================================================

class Company(Base, TimestampMixin):
    """Modelo de Empresa/Tenant"""
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    subdomain = Column(String(100), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=True)

    # Relationships
    users = relationship("User", back_populates="company")
    locations = relationship("Location", back_populates="company")
    products = relationship("Product", back_populates="company")


# =====================================================
# LOCALIZACIONES
# =====================================================

class Location(Base):
    """Ubicación de la empresa: tienda (STORE) o bodega (WAREHOUSE)"""
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False)
    address = Column(Text)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.current_timestamp())

    __table_args__ = (
        CheckConstraint("type IN ('STORE', 'WAREHOUSE')", name="locations_type_check"),
    )

    # Relationships
    company = relationship("Company", back_populates="locations")


class TransferRoute(Base):
    """Política de aprobación por carril origen → destino (solo lectura para el flujo)"""
    __tablename__ = "transfer_routes"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    from_location_type = Column(String(20), nullable=False)
    from_location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    to_location_type = Column(String(20), nullable=False)
    to_location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    approval_policy = Column(String(20), nullable=False, default='STANDARD')
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.current_timestamp())

    __table_args__ = (
        UniqueConstraint(
            'company_id', 'from_location_type', 'from_location_id', 'to_location_type', 'to_location_id',
            name='transfer_routes_lane_key'
        ),
    )


# =====================================================
# USUARIOS
# =====================================================

class User(Base):
    """Modelo de Usuario"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    # FOUNDER, CEO, GENERAL_MANAGER, STORE_MANAGER, EMPLOYEE
    role = Column(String(50), default='EMPLOYEE', nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.current_timestamp())

    # Relationships
    company = relationship("Company", back_populates="users")
    location_assignments = relationship("UserLocationAssignment", back_populates="user")
    warehouse_permissions = relationship("WarehousePermission", back_populates="user")

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class UserLocationAssignment(Base):
    """Asignación Usuario-Ubicación (ubicaciones que gestiona un STORE_MANAGER)"""
    __tablename__ = "user_location_assignments"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    is_active = Column(Boolean, default=True)
    assigned_at = Column(DateTime, server_default=func.current_timestamp())

    __table_args__ = (
        UniqueConstraint('user_id', 'location_id', name='user_location_assignments_user_id_location_id_key'),
    )

    # Relationships
    user = relationship("User", back_populates="location_assignments")
    location = relationship("Location")


class WarehousePermission(Base):
    """Permiso por bodega (READ / READ_WRITE), independiente del rol en la empresa"""
    __tablename__ = "warehouse_permissions"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    warehouse_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    permission_type = Column(String(20), nullable=False, default='READ')
    is_active = Column(Boolean, default=True)
    granted_at = Column(DateTime, server_default=func.current_timestamp())
    revoked_at = Column(DateTime)

    __table_args__ = (
        UniqueConstraint('user_id', 'warehouse_id', name='warehouse_permissions_user_warehouse_key'),
    )

    # Relationships
    user = relationship("User", back_populates="warehouse_permissions")
    warehouse = relationship("Location")


# =====================================================
# PRODUCTOS E INVENTARIO
# =====================================================

class Product(Base, TimestampMixin):
    """Modelo de Producto"""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    sku = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)

    __table_args__ = (
        UniqueConstraint('company_id', 'sku', name='products_company_sku_key'),
    )

    # Relationships
    company = relationship("Company", back_populates="products")


class InventoryRecord(Base, TimestampMixin):
    """Libro de existencias por (empresa, ubicación, producto)"""
    __tablename__ = "inventory_records"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    location_type = Column(String(20), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    current_quantity = Column(Integer, nullable=False, default=0)
    reserved_for_sales = Column(Integer, nullable=False, default=0)
    reserved_for_transfers = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint('company_id', 'location_id', 'product_id', name='inventory_records_location_product_key'),
        CheckConstraint('current_quantity >= 0', name='inventory_records_current_non_negative'),
        CheckConstraint('reserved_for_sales >= 0', name='inventory_records_sales_non_negative'),
        CheckConstraint('reserved_for_transfers >= 0', name='inventory_records_transfers_non_negative'),
    )

    __mapper_args__ = {"version_id_col": version}


class InventoryMovement(Base):
    """Auditoría de cada mutación del libro de existencias"""
    __tablename__ = "inventory_movements"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    movement_type = Column(String(50), nullable=False)
    quantity = Column(Integer, nullable=False)
    quantity_before = Column(Integer)
    quantity_after = Column(Integer)
    transfer_request_id = Column(String(36), ForeignKey("transfer_requests.id"))
    user_id = Column(Integer)
    notes = Column(Text)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())


# =====================================================
# TRANSFERENCIAS
# =====================================================

class TransferRequest(Base):
    """Modelo de Solicitud de Transferencia"""
    __tablename__ = "transfer_requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    # Origen / destino como (tipo, id)
    from_location_type = Column(String(20), nullable=False)
    from_location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    to_location_type = Column(String(20), nullable=False)
    to_location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)

    # Cantidades
    requested_quantity = Column(Integer, nullable=False)
    approved_quantity = Column(Integer)
    received_quantity = Column(Integer)
    damaged_quantity = Column(Integer)
    shortfall_quantity = Column(Integer)

    status = Column(String(20), nullable=False, default='PENDING')
    priority = Column(String(20), nullable=False, default='MEDIUM')

    # Detalle del artículo y motivo
    item_name = Column(String(255))
    item_sku = Column(String(100))
    reason = Column(Text)
    notes = Column(Text)

    # Participantes
    requested_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    approved_by_user_id = Column(Integer, ForeignKey("users.id"))
    packed_by = Column(String(200))
    carrier_name = Column(String(200))
    carrier_phone = Column(String(20))
    carrier_vehicle = Column(String(100))
    receiver_name = Column(String(200))
    received_by_user_id = Column(Integer, ForeignKey("users.id"))

    # Entrega y recepción
    delivery_qr_code = Column(Text)
    proof_of_delivery_url = Column(String(500))
    condition_on_arrival = Column(String(20))
    receipt_notes = Column(Text)
    shortfall_note = Column(Text)
    rejection_reason = Column(Text)
    cancellation_reason = Column(Text)

    # Tiempos de cada transición
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=False, server_default=func.current_timestamp(), onupdate=func.current_timestamp())
    approved_at = Column(DateTime)
    rejected_at = Column(DateTime)
    ready_at = Column(DateTime)
    shipped_at = Column(DateTime)
    estimated_delivery_at = Column(DateTime)
    delivered_at = Column(DateTime)
    completed_at = Column(DateTime)
    cancelled_at = Column(DateTime)

    # Momento en que el stock salió del libro de origen
    withdrawn_at = Column(DateTime)

    # Control de concurrencia e idempotencia
    version = Column(Integer, nullable=False)
    last_action = Column(String(20))
    last_idempotency_key = Column(String(100))

    __table_args__ = (
        CheckConstraint('requested_quantity > 0', name='transfer_requests_requested_positive'),
        Index('ix_transfer_requests_company_status', 'company_id', 'status'),
        Index('ix_transfer_requests_from_location', 'company_id', 'from_location_id', 'product_id', 'status'),
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    product = relationship("Product")
    requested_by = relationship("User", foreign_keys=[requested_by_user_id])
    approved_by = relationship("User", foreign_keys=[approved_by_user_id])
    from_location = relationship("Location", foreign_keys=[from_location_id])
    to_location = relationship("Location", foreign_keys=[to_location_id])

    @property
    def transit_time_minutes(self):
        if self.shipped_at and self.completed_at:
            return int((self.completed_at - self.shipped_at).total_seconds() // 60)
        return None
