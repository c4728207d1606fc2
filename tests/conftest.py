# tests/conftest.py
import os
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Antes de importar la app: nada debe intentar conectarse a PostgreSQL
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"

from app.config.database import Base, get_db  # noqa: E402
from app.core.auth.dependencies import build_actor  # noqa: E402
from app.core.auth.service import AuthService  # noqa: E402
from app.main import app  # noqa: E402
from app.shared.database.models import (  # noqa: E402
    Company, Location, Product, TransferRoute, User, UserLocationAssignment, WarehousePermission
)
from app.shared.services.inventory_service import LocationInventoryStore  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite: dejar que SQLAlchemy emita BEGIN para que SAVEPOINT funcione
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seed(db):
    """
    Empresa A con una bodega y dos tiendas, empresa B con una bodega.

    La bodega principal arranca con 100 unidades del producto.
    """
    company_a = Company(name="Calzado Andino", subdomain="andino")
    company_b = Company(name="Otra Empresa", subdomain="otra")
    db.add_all([company_a, company_b])
    db.flush()

    warehouse = Location(company_id=company_a.id, name="Bodega Central", type="WAREHOUSE")
    store = Location(company_id=company_a.id, name="Tienda Norte", type="STORE")
    other_store = Location(company_id=company_a.id, name="Tienda Sur", type="STORE")
    foreign_warehouse = Location(company_id=company_b.id, name="Bodega B", type="WAREHOUSE")
    db.add_all([warehouse, store, other_store, foreign_warehouse])
    db.flush()

    product = Product(company_id=company_a.id, sku="ZP-001", name="Zapato Running")
    foreign_product = Product(company_id=company_b.id, sku="ZP-001", name="Zapato B")
    db.add_all([product, foreign_product])
    db.flush()

    def user(company, email, role):
        u = User(company_id=company.id, email=email, first_name=role.title(), last_name="Test", role=role)
        db.add(u)
        return u

    gm = user(company_a, "gm@andino.com", "GENERAL_MANAGER")
    store_manager = user(company_a, "tienda@andino.com", "STORE_MANAGER")
    warehouse_manager = user(company_a, "bodega@andino.com", "STORE_MANAGER")
    other_manager = user(company_a, "sur@andino.com", "STORE_MANAGER")
    employee = user(company_a, "empleado@andino.com", "EMPLOYEE")
    keeper = user(company_a, "bodeguero@andino.com", "EMPLOYEE")
    foreign_gm = user(company_b, "gm@otra.com", "GENERAL_MANAGER")
    db.flush()

    db.add_all([
        UserLocationAssignment(company_id=company_a.id, user_id=store_manager.id, location_id=store.id),
        UserLocationAssignment(company_id=company_a.id, user_id=warehouse_manager.id, location_id=warehouse.id),
        UserLocationAssignment(company_id=company_a.id, user_id=other_manager.id, location_id=other_store.id),
        WarehousePermission(
            company_id=company_a.id, user_id=keeper.id, warehouse_id=warehouse.id, permission_type="READ_WRITE"
        ),
    ])

    store_ledger = LocationInventoryStore(db)
    record = store_ledger.lock_record(company_a.id, "WAREHOUSE", warehouse.id, product.id)
    store_ledger.add_stock(record, 100, gm.id, "Stock inicial")
    db.commit()

    return SimpleNamespace(
        company_id=company_a.id,
        foreign_company_id=company_b.id,
        warehouse_id=warehouse.id,
        store_id=store.id,
        other_store_id=other_store.id,
        foreign_warehouse_id=foreign_warehouse.id,
        product_id=product.id,
        foreign_product_id=foreign_product.id,
        gm=gm.id,
        store_manager=store_manager.id,
        warehouse_manager=warehouse_manager.id,
        other_manager=other_manager.id,
        employee=employee.id,
        keeper=keeper.id,
        foreign_gm=foreign_gm.id,
    )


@pytest.fixture
def actor_for(db):
    """Construye el Actor de un usuario sembrado"""
    def _actor(user_id):
        return build_actor(db, db.get(User, user_id))
    return _actor


@pytest.fixture
def gm_only_route(db, seed):
    route = TransferRoute(
        company_id=seed.company_id,
        from_location_type="WAREHOUSE",
        from_location_id=seed.warehouse_id,
        to_location_type="STORE",
        to_location_id=seed.store_id,
        approval_policy="GM_ONLY",
        is_active=True,
    )
    db.add(route)
    db.commit()
    return route


@pytest.fixture
def client(db):
    """TestClient que comparte la sesión de la prueba"""
    def get_db_override():
        yield db

    app.dependency_overrides[get_db] = get_db_override
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def auth_headers(db):
    def _headers(user_id, extra=None):
        user = db.get(User, user_id)
        token = AuthService.create_access_token({"user_id": user.id, "company_id": user.company_id})
        headers = {"Authorization": f"Bearer {token}"}
        headers.update(extra or {})
        return headers
    return _headers


@pytest.fixture
def workflow(db):
    from app.modules.transfers.service import TransferWorkflowService
    return TransferWorkflowService(db)


@pytest.fixture
def create_transfer(workflow, actor_for, seed):
    """Crea una solicitud bodega → tienda y devuelve su id"""
    from app.modules.transfers.schemas import TransferRequestCreate

    def _create(quantity=50, requested_by=None, priority="MEDIUM", to_location_id=None, **overrides):
        data = TransferRequestCreate(
            product_id=overrides.pop("product_id", seed.product_id),
            from_location_type=overrides.pop("from_location_type", "WAREHOUSE"),
            from_location_id=overrides.pop("from_location_id", seed.warehouse_id),
            to_location_type=overrides.pop("to_location_type", "STORE"),
            to_location_id=to_location_id or seed.store_id,
            quantity=quantity,
            priority=priority,
            **overrides
        )
        response = workflow.create_transfer_request(data, actor_for(requested_by or seed.store_manager))
        return response.request.id

    return _create
