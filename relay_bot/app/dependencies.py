from fastapi import Depends, Request
from sqlalchemy.orm import Session

from database.connection import get_db
from app.services.ai_service import ProviderGateway
from app.services.pipeline import InboundPipeline
from app.services.tenant_store import TenantStore
from app.services.throttle_service import SlidingWindowRateLimiter, rate_limiter
from app.services.whatsapp_service import WhatsAppService, whatsapp_service


def get_provider_gateway(request: Request) -> ProviderGateway:
    """El gateway vive en app.state (se reemplaza con /admin/switch-provider)."""
    gateway = getattr(request.app.state, "provider_gateway", None)
    if gateway is None:
        gateway = ProviderGateway.from_settings()
        request.app.state.provider_gateway = gateway
    return gateway


def get_rate_limiter() -> SlidingWindowRateLimiter:
    return rate_limiter


def get_whatsapp_service() -> WhatsAppService:
    return whatsapp_service


def get_tenant_store(db: Session = Depends(get_db)) -> TenantStore:
    return TenantStore(db)


def get_pipeline(
    store: TenantStore = Depends(get_tenant_store),
    gateway: ProviderGateway = Depends(get_provider_gateway),
    whatsapp: WhatsAppService = Depends(get_whatsapp_service),
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
) -> InboundPipeline:
    return InboundPipeline(store, gateway, whatsapp, limiter)
