# tests/conftest.py
import os

# Antes de importar la app: SQLite en memoria y credenciales de prueba
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test_auth_token_123")
os.environ.setdefault("TWILIO_WHATSAPP_NUMBER", "+14155238886")

import pytest
from unittest.mock import AsyncMock

from config.settings import settings
from database.connection import Base, engine, SessionLocal
import app.models  # noqa: F401  (registra tablas)
from app.services.providers.base import ProviderAdapter, ProviderError
from app.services.tenant_store import TenantStore
from app.services.whatsapp_service import SendResult


@pytest.fixture(scope="session")
def twilio_token_env():
    """Token de Twilio usado para firmar en los tests."""
    return os.getenv("TWILIO_AUTH_TOKEN", "test_auth_token_123")


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch, twilio_token_env):
    """Setup automático para cada test (settings se leen en tiempo de llamada)."""
    monkeypatch.setattr(settings, "TWILIO_AUTH_TOKEN", twilio_token_env)
    monkeypatch.setattr(settings, "DISABLE_WEBHOOK_VALIDATION", False)
    monkeypatch.setattr(settings, "DEFAULT_TENANT_KEY", "default")
    monkeypatch.setattr(settings, "DEFAULT_TIMEZONE", "UTC")


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store(db):
    return TenantStore(db, default_tenant_key="default")


class FakeProvider(ProviderAdapter):
    """Proveedor en memoria: responde `reply` o lanza `error`."""

    def __init__(self, name, reply="ok", error=None, configured=True):
        self.name = name
        super().__init__("key" if configured else None, f"{name}-model")
        self.reply = reply
        self.error = error
        self.calls = []

    def build_request(self, system_prompt, turns):
        return {"system": system_prompt, "turns": turns}

    async def send(self, request):
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        return self.reply

    def extract_text(self, raw):
        return raw


@pytest.fixture
def fake_provider_cls():
    return FakeProvider


@pytest.fixture
def provider_error_cls():
    return ProviderError


@pytest.fixture
def whatsapp_mock():
    mock = AsyncMock()
    mock.send_message.return_value = SendResult(success=True, message_id="SM123")
    return mock
