# tests/test_admin_router.py
import pytest
from fastapi.testclient import TestClient

from main import app as main_app
from app.dependencies import get_rate_limiter, get_whatsapp_service
from app.models.message import Direction
from app.services.ai_service import ProviderGateway
from app.services.throttle_service import SlidingWindowRateLimiter
from app.services.whatsapp_service import SendResult
from database.connection import get_db


@pytest.fixture
def limiter():
    return SlidingWindowRateLimiter()


@pytest.fixture
def gateway(fake_provider_cls):
    return ProviderGateway(
        [fake_provider_cls("openai"), fake_provider_cls("anthropic"), fake_provider_cls("gemini", configured=False)],
        primary="openai",
        timeout=30,
    )


@pytest.fixture
def client(db, whatsapp_mock, limiter, gateway):
    """App real con BD de test, Twilio falso y gateway en memoria (sin lifespan)."""
    def _get_db():
        yield db

    main_app.dependency_overrides[get_db] = _get_db
    main_app.dependency_overrides[get_whatsapp_service] = lambda: whatsapp_mock
    main_app.dependency_overrides[get_rate_limiter] = lambda: limiter
    main_app.state.provider_gateway = gateway
    try:
        yield TestClient(main_app)
    finally:
        main_app.dependency_overrides.clear()
        main_app.state.provider_gateway = None


def _add(client, key="cafe-1", name="Cafe Uno", number="+14155550001", **extra):
    return client.post("/admin/add-client", json={
        "tenantKey": key, "businessName": name, "routingNumber": number, **extra,
    })


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "activo"

    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["aiProvider"]["current"] == "openai"


def test_add_client_and_list(client):
    res = _add(client, instructions="Be brief", languageTag="bn")

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["client"]["tenantKey"] == "cafe-1"
    assert body["client"]["languageTag"] == "bn"

    clients = client.get("/admin/clients").json()
    assert [c["tenantKey"] for c in clients] == ["cafe-1"]


def test_add_client_twice_updates_in_place(client):
    _add(client)
    _add(client, name="Cafe Uno Renamed")

    clients = client.get("/admin/clients").json()
    assert len(clients) == 1
    assert clients[0]["businessName"] == "Cafe Uno Renamed"


@pytest.mark.parametrize("payload", [
    {"businessName": "Cafe Uno", "routingNumber": "+14155550001"},
    {"tenantKey": "cafe-1", "routingNumber": "+14155550001"},
    {"tenantKey": "cafe-1", "businessName": "Cafe Uno"},
    {"tenantKey": "  ", "businessName": "Cafe Uno", "routingNumber": "+14155550001"},
])
def test_add_client_missing_fields_is_400(client, payload):
    res = client.post("/admin/add-client", json=payload)
    assert res.status_code == 400


def test_update_schedule(client):
    _add(client)

    res = client.put("/admin/clients/cafe-1/schedule", json={
        "openHour": 9, "closeHour": 21, "timezone": "Asia/Dhaka", "dailySummaryTime": "20:30",
    })

    assert res.status_code == 200
    body = res.json()
    assert (body["openHour"], body["closeHour"], body["timezone"]) == (9, 21, "Asia/Dhaka")
    assert body["dailySummaryTime"] == "20:30"

    # Actualización parcial: lo no enviado se conserva
    body = client.put("/admin/clients/cafe-1/schedule", json={"broadcastMessage": "Promo!"}).json()
    assert body["openHour"] == 9
    assert body["broadcastMessage"] == "Promo!"


def test_update_schedule_unknown_tenant_is_404(client):
    res = client.put("/admin/clients/nope/schedule", json={"openHour": 9})
    assert res.status_code == 404


@pytest.mark.parametrize("payload", [
    {"openHour": 24},
    {"closeHour": 0},
    {"dailySummaryTime": "25:00"},
    {"broadcastTime": "9am"},
    {"timezone": "Mars/Olympus"},
])
def test_update_schedule_rejects_bad_values(client, payload):
    _add(client)
    res = client.put("/admin/clients/cafe-1/schedule", json=payload)
    assert res.status_code == 400


def test_deactivate_client(client):
    _add(client)

    res = client.put("/admin/clients/cafe-1/active", json={"active": False})

    assert res.status_code == 200
    assert res.json()["active"] is False
    assert client.put("/admin/clients/nope/active", json={"active": True}).status_code == 404


def test_stats(client, store):
    _add(client)
    store.append_message("cafe-1", "+8801711000000", "Hi", Direction.INBOUND)
    store.append_message("cafe-1", "+8801711000000", "Hello!", Direction.OUTBOUND)

    body = client.get("/admin/clients/cafe-1/stats").json()

    assert body["today"] == {"total": 2, "inbound": 1, "outbound": 1}
    assert body["uniqueSenders"] == 1


def test_conversation(client, store):
    _add(client)
    store.append_message("cafe-1", "+8801711000000", "Hi", Direction.INBOUND)
    store.append_message("cafe-1", "+8801711000000", "Hello!", Direction.OUTBOUND)

    body = client.get("/admin/conversations/8801711000000", params={"clientId": "cafe-1"}).json()

    assert body["phoneNumber"] == "+8801711000000"
    assert body["messageCount"] == 2
    assert [m["body"] for m in body["messages"]] == ["Hi", "Hello!"]


def test_send_message_records_outbound(client, store, whatsapp_mock):
    _add(client)

    res = client.post("/admin/send-message", json={
        "destination": "+8801711000000", "text": "We open at 9", "tenantKey": "cafe-1",
    })

    assert res.status_code == 200
    assert res.json() == {"success": True, "messageSid": "SM123"}
    whatsapp_mock.send_message.assert_awaited_once_with(
        "+8801711000000", "We open at 9", from_number="+14155550001"
    )
    history = store.get_recent_history("+8801711000000", "cafe-1", 5)
    assert [(h["direction"], h["body"]) for h in history] == [("outbound", "We open at 9")]


def test_send_message_failure_is_502(client, store, whatsapp_mock):
    _add(client)
    whatsapp_mock.send_message.return_value = SendResult(success=False, error="Invalid number", code=21211)

    res = client.post("/admin/send-message", json={
        "destination": "+8801711000000", "text": "Hi", "tenantKey": "cafe-1",
    })

    assert res.status_code == 502
    assert store.get_recent_history("+8801711000000", "cafe-1", 5) == []


def test_send_message_requires_text(client):
    res = client.post("/admin/send-message", json={"destination": "+8801711000000", "text": ""})
    assert res.status_code == 400


def test_rate_limit_status(client, limiter):
    from config.settings import settings
    limiter.allow("+8801711000000", settings.RATE_LIMIT, settings.RATE_LIMIT_WINDOW_SECONDS)

    body = client.get("/admin/rate-limit/8801711000000").json()

    assert body["phoneNumber"] == "+8801711000000"
    assert body["rateLimit"]["count"] == 1
    assert body["rateLimit"]["remaining"] == settings.RATE_LIMIT - 1


def test_provider_info_and_switch(client):
    assert client.get("/admin/provider").json()["current"] == "openai"

    res = client.post("/admin/switch-provider", json={"provider": "claude"})

    assert res.status_code == 200
    assert res.json()["provider"] == "anthropic"
    assert client.get("/admin/provider").json()["current"] == "anthropic"


def test_switch_to_unknown_provider_is_400(client):
    res = client.post("/admin/switch-provider", json={"provider": "mistral"})

    assert res.status_code == 400
    assert client.get("/admin/provider").json()["current"] == "openai"
