from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging
import re

from config.settings import settings
from app.dependencies import (
    get_provider_gateway,
    get_rate_limiter,
    get_tenant_store,
    get_whatsapp_service,
)
from app.models.message import Direction
from app.services.ai_service import ProviderGateway, canonical_provider
from app.services.tenant_store import TenantStore
from app.services.throttle_service import SlidingWindowRateLimiter
from app.services.whatsapp_service import WhatsAppService
from app.utils.phone import normalize_msisdn

router = APIRouter()
logger = logging.getLogger(__name__)

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class TenantIn(BaseModel):
    tenantKey: str = Field(..., min_length=1, max_length=64)
    businessName: str = Field(..., min_length=1, max_length=150)
    routingNumber: str = Field(..., min_length=5, max_length=40)
    instructions: Optional[str] = None
    languageTag: Optional[str] = Field(None, max_length=8)

    @field_validator("tenantKey", "businessName", "routingNumber")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("no puede estar vacío")
        return v


class ScheduleIn(BaseModel):
    openHour: Optional[int] = Field(None, ge=0, le=23)
    closeHour: Optional[int] = Field(None, ge=1, le=24)
    dailySummaryTime: Optional[str] = None
    timezone: Optional[str] = None
    broadcastMessage: Optional[str] = None
    broadcastTime: Optional[str] = None

    @field_validator("dailySummaryTime", "broadcastTime")
    @classmethod
    def check_hhmm(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _HHMM.match(v):
            raise ValueError("formato esperado HH:MM")
        return v

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"zona horaria desconocida: {v}")
        return v


class ActiveIn(BaseModel):
    active: bool


class SendMessageIn(BaseModel):
    destination: str = Field(..., min_length=5)
    text: str = Field(..., min_length=1, max_length=4096)
    tenantKey: Optional[str] = None


class SwitchProviderIn(BaseModel):
    provider: str


SCHEDULE_COLUMNS = {
    "openHour": "open_hour",
    "closeHour": "close_hour",
    "dailySummaryTime": "daily_summary_time",
    "timezone": "timezone",
    "broadcastMessage": "broadcast_message",
    "broadcastTime": "broadcast_time",
}


@router.get("/clients")
def list_clients(store: TenantStore = Depends(get_tenant_store)):
    return [t.to_dict() for t in store.list_tenants()]


@router.post("/add-client")
def add_client(data: TenantIn, store: TenantStore = Depends(get_tenant_store)):
    try:
        tenant = store.upsert_tenant(
            data.tenantKey,
            data.businessName,
            data.routingNumber,
            data.instructions,
            data.languageTag,
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"No se pudo guardar el tenant: {e}")
    return {
        "success": True,
        "message": f"Client {data.businessName} saved",
        "client": tenant,
    }


@router.put("/clients/{tenant_key}/schedule")
def update_schedule(tenant_key: str, data: ScheduleIn, store: TenantStore = Depends(get_tenant_store)):
    fields = {
        SCHEDULE_COLUMNS[name]: value
        for name, value in data.model_dump(exclude_unset=True).items()
    }
    try:
        tenant = store.update_schedule(tenant_key, **fields)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"No se pudo actualizar el horario: {e}")
    if tenant is None:
        raise HTTPException(status_code=404, detail="Tenant no encontrado")
    return tenant


@router.put("/clients/{tenant_key}/active")
def set_active(tenant_key: str, data: ActiveIn, store: TenantStore = Depends(get_tenant_store)):
    try:
        tenant = store.set_tenant_active(tenant_key, data.active)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    if tenant is None:
        raise HTTPException(status_code=404, detail="Tenant no encontrado")
    return tenant


@router.get("/clients/{tenant_key}/stats")
def client_stats(
    tenant_key: str,
    windowDays: int = Query(30, ge=1, le=365),
    store: TenantStore = Depends(get_tenant_store),
):
    return {
        "tenantKey": tenant_key,
        "today": store.get_today_message_counts(tenant_key),
        "uniqueSenders": len(store.get_recent_unique_senders(tenant_key, windowDays)),
        "windowDays": windowDays,
    }


@router.get("/conversations/{phone_number}")
def conversation(
    phone_number: str,
    limit: int = Query(50, ge=1, le=500),
    clientId: Optional[str] = None,
    store: TenantStore = Depends(get_tenant_store),
):
    tenant_key = clientId or settings.DEFAULT_TENANT_KEY
    phone = normalize_msisdn(phone_number)
    history = store.get_recent_history(phone, tenant_key, limit)
    return {
        "phoneNumber": phone,
        "clientId": tenant_key,
        "messageCount": len(history),
        "messages": [
            {
                "body": m["body"],
                "direction": m["direction"],
                "language": m["language"],
                "timestamp": m["timestamp"].isoformat() if m["timestamp"] else None,
            }
            for m in history
        ],
    }


@router.post("/send-message")
async def send_message(
    data: SendMessageIn,
    store: TenantStore = Depends(get_tenant_store),
    whatsapp: WhatsAppService = Depends(get_whatsapp_service),
):
    tenant_key = data.tenantKey or settings.DEFAULT_TENANT_KEY
    tenant = store.get_tenant(tenant_key)
    from_number = tenant.routing_number if tenant and tenant.routing_number else None

    result = await whatsapp.send_message(data.destination, data.text, from_number=from_number)
    if not result.success:
        raise HTTPException(status_code=502, detail=result.error or "Fallo de entrega")

    if tenant is not None:
        store.append_message(tenant.key, data.destination, data.text, Direction.OUTBOUND)
    return {"success": True, "messageSid": result.message_id}


@router.get("/rate-limit/{phone_number}")
def rate_limit_status(
    phone_number: str,
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
):
    phone = normalize_msisdn(phone_number)
    return {
        "phoneNumber": phone,
        "rateLimit": limiter.status(phone, settings.RATE_LIMIT, settings.RATE_LIMIT_WINDOW_SECONDS),
    }


@router.get("/provider")
def provider_info(gateway: ProviderGateway = Depends(get_provider_gateway)):
    return gateway.provider_info()


@router.post("/switch-provider")
def switch_provider(
    data: SwitchProviderIn,
    request: Request,
    gateway: ProviderGateway = Depends(get_provider_gateway),
):
    """
    Cambia el primario del gateway de ESTA instancia (vive hasta reiniciar).
    Para un cambio permanente, actualizar AI_PROVIDER en el entorno.
    """
    name = canonical_provider(data.provider)
    if name not in gateway.adapters:
        raise HTTPException(
            status_code=400,
            detail=f"Proveedor inválido. Opciones: {', '.join(gateway.adapters)}",
        )
    request.app.state.provider_gateway = gateway.with_primary(name)
    logger.info("🔀 Proveedor primario: %s → %s", gateway.primary, name)
    return {
        "success": True,
        "provider": name,
        "scope": "process",
        "note": "Cambio temporal; actualizar AI_PROVIDER para hacerlo permanente.",
    }
