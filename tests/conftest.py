"""Pytest configuration and fixtures."""

import os

# La configuración se lee una sola vez: se fija antes de importar la app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["NOTIFICATION_SEND_DELAY_SECONDS"] = "0"

from datetime import date
from decimal import Decimal

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.future import select
from sqlalchemy.pool import StaticPool

from app import models
from app.config import Settings, get_settings
from app.database import Base, get_db
from app.security import create_session_token, get_password_hash
from app.seed import seed_defaults
from app.services.notifications import NotificationDispatcher, SendResult
from app.services.registry import DecolectaClient
from app.services.storage import ProofStorage


class FakeTransport:
    """Transporte en memoria: registra los envíos y falla para los destinos indicados."""

    def __init__(self, enabled=True, fail_for=(), raise_for=()):
        self.enabled = enabled
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)
        self.sent = []

    async def send(self, to, *args, **kwargs):
        self.sent.append((to, args, kwargs))
        if to in self.raise_for:
            raise RuntimeError("conexión reiniciada")
        if to in self.fail_for:
            return SendResult(False, "destino rechazado")
        return SendResult(True, f"msg-{len(self.sent)}")


class FakeS3:
    def __init__(self):
        self.objects = {}

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[Key] = (Bucket, Body, ContentType)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite://",
        jwt_secret_key="test-secret",
        notification_send_delay_seconds=0,
        reminder_frequency_days=7,
        decolecta_api_key="test-key",
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory, settings):
    """Sesión con el catálogo A/B/C ya cargado."""
    async with session_factory() as session:
        await seed_defaults(session, settings)
        yield session


@pytest.fixture
def make_client(db):
    async def _make(
        legal_name="EMPRESA DEMO S.A.C.",
        tax_id="20123456789",
        monthly_fee=Decimal("500.00"),
        applies_fixed_fee=True,
        registered_at=date(2024, 1, 1),
        classification=None,
        **extra,
    ):
        classification_id = None
        if classification:
            result = await db.execute(
                select(models.Classification.id).where(models.Classification.code == classification)
            )
            classification_id = result.scalar_one()
        client = models.Client(
            legal_name=legal_name,
            tax_id=tax_id,
            tax_id_last_digit=int(tax_id[-1]),
            monthly_fee=monthly_fee,
            applies_fixed_fee=applies_fixed_fee,
            registered_at=registered_at,
            classification_id=classification_id,
            status="ACTIVE",
            **extra,
        )
        db.add(client)
        await db.commit()
        await db.refresh(client)
        return client

    return _make


@pytest.fixture
def make_payment(db):
    async def _make(client, amount, payment_date, service_month=None, status="CONFIRMED"):
        payment = models.Payment(
            client_id=client.id,
            amount=Decimal(amount),
            payment_date=payment_date,
            service_month=(service_month or payment_date).replace(day=1),
            status=status,
            payment_method="TRANSFER",
        )
        db.add(payment)
        await db.commit()
        await db.refresh(payment)
        return payment

    return _make


# --- API ---
@pytest.fixture
def whatsapp():
    return FakeTransport()


@pytest.fixture
def email():
    return FakeTransport()


@pytest.fixture
def s3():
    return FakeS3()


@pytest.fixture
async def api(session_factory, db, whatsapp, email, s3):
    """Cliente HTTP contra la app, sin lifespan y con la BD de pruebas."""
    from app.main import app

    app_settings = get_settings()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.dispatcher = NotificationDispatcher(app_settings, whatsapp=whatsapp, email=email)
    app.state.registry = DecolectaClient(app_settings)
    app.state.storage = ProofStorage(app_settings, client=s3)

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def _auth_headers(db, email, role):
    user = models.User(
        email=email,
        full_name=f"Usuario {role}",
        hashed_password=get_password_hash("secreto123"),
        role=role,
        status="ACTIVE",
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return {"Authorization": f"Bearer {create_session_token(user)}"}


@pytest.fixture
async def admin_headers(db):
    return await _auth_headers(db, "jefe@jdconsultores.com.pe", "ADMIN")


@pytest.fixture
async def employee_headers(db):
    return await _auth_headers(db, "asesor@jdconsultores.com.pe", "EMPLEADO")


@pytest.fixture
async def customer_headers(db):
    return await _auth_headers(db, "cliente@jdconsultores.com.pe", "CLIENTE")
