"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- Authenticated HTTP clients per role
- Test data factories (users, drivers, vehicles, shipments, departures)
"""
# JWT_SECRET_KEY must be set before importing app - the settings validator requires it when DEBUG=False
import os
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-testing-only-do-not-use-in-production")

import pytest
from datetime import datetime
from decimal import Decimal
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

import app.db.models  # noqa: F401  registers every table on Base.metadata
from app.core.auth import create_access_token
from app.core.config import settings
from app.core.permissions import Actor
from app.db.database import Base, get_db
from app.db.models.departure import Departure, DepartureStatus
from app.db.models.driver import Driver
from app.db.models.shipment import Shipment, ShipmentNature, ShipmentStatus, ShipmentType
from app.db.models.user import User, UserRole
from app.db.models.vehicle import Vehicle
from app.main import app


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# No custom event_loop fixture: pytest-asyncio handles it with asyncio_mode=auto


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture(autouse=True)
def document_storage(tmp_path, monkeypatch):
    """General waybills are written to a per-test directory"""
    storage = tmp_path / "waybills"
    monkeypatch.setattr(settings, "DOCUMENT_STORAGE_DIR", str(storage))
    return storage


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession):
    """Create test client with database override"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Test Data Factories
# ============================================================================


@pytest.fixture
def user_factory(db_session: AsyncSession):
    """Factory for creating operators"""
    counter = {"n": 0}

    async def _create_user(
        role: UserRole = UserRole.ADMIN,
        username: str | None = None,
        full_name: str | None = "Test Operator",
        is_active: bool = True,
    ) -> User:
        counter["n"] += 1
        user = User(
            username=username or f"{role.value}-{counter['n']}",
            full_name=full_name,
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def driver_factory(db_session: AsyncSession):
    counter = {"n": 0}

    async def _create_driver(
        first_name: str = "Moussa",
        last_name: str = "Traore",
        phone: str = "70123456",
        is_active: bool = True,
    ) -> Driver:
        counter["n"] += 1
        driver = Driver(
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            license_number=f"LIC-{counter['n']:04d}",
            is_active=is_active,
        )
        db_session.add(driver)
        await db_session.commit()
        await db_session.refresh(driver)
        return driver

    return _create_driver


@pytest.fixture
def vehicle_factory(db_session: AsyncSession):
    counter = {"n": 0}

    async def _create_vehicle(name: str = "Bus 1") -> Vehicle:
        counter["n"] += 1
        vehicle = Vehicle(registration_number=f"11-AA-{counter['n']:04d}", name=name)
        db_session.add(vehicle)
        await db_session.commit()
        await db_session.refresh(vehicle)
        return vehicle

    return _create_vehicle


@pytest.fixture
def shipment_factory(db_session: AsyncSession):
    """
    Factory for shipments inserted directly, bypassing the ledger.

    Waybill numbers use a dedicated prefix so they never collide with numbers
    allocated by the service under test.
    """
    counter = {"n": 0}

    async def _create_shipment(
        price: Decimal | str = "1000.00",
        weight: Decimal | str | None = "10.000",
        nature: ShipmentNature = ShipmentNature.PARCEL,
        type: ShipmentType | None = None,
        status: ShipmentStatus = ShipmentStatus.CONFIRMED,
        departure_id: int | None = None,
        route: str = "Ouaga-Bobo",
        created_at: datetime | None = None,
        waybill_number: str | None = None,
    ) -> Shipment:
        counter["n"] += 1
        is_confirmed = status in (ShipmentStatus.CONFIRMED, ShipmentStatus.ASSIGNED)
        shipment = Shipment(
            waybill_number=waybill_number or f"FX-2024-{counter['n']:04d}",
            sender_name="Awa Ouedraogo",
            sender_phone="70111111",
            receiver_name="Issa Sawadogo",
            receiver_phone="76222222",
            weight=Decimal(weight) if weight is not None else None,
            declared_value=Decimal("0"),
            price=Decimal(price),
            route=route,
            nature=nature,
            type=type,
            status=status,
            is_confirmed=is_confirmed,
            confirmed_at=datetime.utcnow() if is_confirmed else None,
            is_cancelled=status == ShipmentStatus.CANCELLED,
            departure_id=departure_id,
        )
        if created_at is not None:
            shipment.created_at = created_at
        db_session.add(shipment)
        await db_session.commit()
        await db_session.refresh(shipment)
        return shipment

    return _create_shipment


@pytest.fixture
def departure_factory(db_session: AsyncSession):
    """Factory for departures inserted directly in any status"""
    counter = {"n": 0}

    async def _create_departure(
        status: DepartureStatus = DepartureStatus.OPEN,
        driver_id: int | None = None,
        vehicle_id: int | None = None,
        route: str = "Ouaga-Bobo",
        sealed_at: datetime | None = None,
        general_waybill_number: str | None = None,
    ) -> Departure:
        counter["n"] += 1
        if status != DepartureStatus.OPEN:
            sealed_at = sealed_at or datetime.utcnow()
            general_waybill_number = general_waybill_number or f"FXG-2024-{counter['n']:04d}"
        departure = Departure(
            status=status,
            driver_id=driver_id,
            vehicle_id=vehicle_id,
            route=route,
            sealed_at=sealed_at,
            general_waybill_number=general_waybill_number,
            closed_at=datetime.utcnow() if status == DepartureStatus.CLOSED else None,
        )
        db_session.add(departure)
        await db_session.commit()
        await db_session.refresh(departure)
        return departure

    return _create_departure


# ============================================================================
# Actors and authenticated clients
# ============================================================================


@pytest.fixture
def actor_factory(user_factory):
    """Creates a persisted operator and returns its Actor"""
    async def _create_actor(role: UserRole = UserRole.ADMIN) -> Actor:
        user = await user_factory(role=role)
        return Actor(user_id=user.id, role=user.role)

    return _create_actor


@pytest.fixture
async def admin_actor(actor_factory) -> Actor:
    return await actor_factory(UserRole.ADMIN)


@pytest.fixture
async def staff_actor(actor_factory) -> Actor:
    return await actor_factory(UserRole.STAFF)


@pytest.fixture
async def accountant_actor(actor_factory) -> Actor:
    return await actor_factory(UserRole.OPERATIONAL_ACCOUNTANT)


def auth_headers(actor: Actor) -> dict[str, str]:
    token = create_access_token(actor.user_id, actor.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_actor: Actor) -> dict[str, str]:
    return auth_headers(admin_actor)


@pytest.fixture
def staff_headers(staff_actor: Actor) -> dict[str, str]:
    return auth_headers(staff_actor)


@pytest.fixture
def accountant_headers(accountant_actor: Actor) -> dict[str, str]:
    return auth_headers(accountant_actor)


@pytest.fixture
def headers_for():
    """Bearer headers for any actor"""
    return auth_headers
