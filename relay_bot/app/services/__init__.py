from .ai_service import ProviderGateway, TenantContext
from .whatsapp_service import WhatsAppService, parse_inbound, whatsapp_service
from .tenant_store import TenantStore
from .throttle_service import SlidingWindowRateLimiter, rate_limiter
from .pipeline import InboundPipeline

__all__ = [
    "ProviderGateway",
    "TenantContext",
    "WhatsAppService",
    "parse_inbound",
    "whatsapp_service",
    "TenantStore",
    "SlidingWindowRateLimiter",
    "rate_limiter",
    "InboundPipeline",
]
