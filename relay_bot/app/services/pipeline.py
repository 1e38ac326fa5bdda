"""
📨 INBOUND PIPELINE - ORQUESTADOR DEL WEBHOOK
=============================================

Un mensaje entrante se procesa de principio a fin en una sola tarea:

 1. Parse            → 400 si falta remitente / número destino
 2. Resolver tenant  → 500 si no hay tenant (fallo de configuración, sin respuesta)
 3. Rate limit       → aviso localizado + 429 (no se persiste)
 4. Adjuntos         → aviso "solo texto" + 200 (no se llama a la IA)
 5. Cuerpo vacío     → 200 sin respuesta (recibos / ruido del gateway)
 6. Horario          → aviso de cerrado, se registra como outbound + 200
 7. Historial        → se lee ANTES de persistir el mensaje actual
 8. Persistir entrada
 9. Generar respuesta (ProviderGateway con fallback)
10. Persistir salida
11. Enviar           → un fallo de entrega se registra pero igual responde 200

Los efectos secundarios siguen estrictamente este orden.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from config.settings import settings
from app.models.message import Direction
from app.models.tenant import Tenant
from app.services.ai_service import ProviderGateway, TenantContext
from app.services.tenant_store import TenantStore, tenant_zone
from app.services.throttle_service import SlidingWindowRateLimiter
from app.services.whatsapp_service import WhatsAppService, ParseError, parse_inbound
from app.utils.i18n import detect_language, notice
from app.utils.phone import masked

logger = logging.getLogger(__name__)


@dataclass
class PipelineOutcome:
    status_code: int
    status: str
    reply: Optional[str] = None
    provider: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_open(tenant: Tenant, now: datetime) -> bool:
    """Hora local del tenant dentro de [open_hour, close_hour). Sin horario = siempre abierto."""
    if not tenant.has_business_hours:
        return True
    hour = now.astimezone(tenant_zone(tenant)).hour
    open_hour, close_hour = tenant.open_hour, tenant.close_hour
    if open_hour <= close_hour:
        return open_hour <= hour < close_hour
    # Horario que cruza medianoche (p.ej. 18–02)
    return hour >= open_hour or hour < close_hour


class InboundPipeline:
    def __init__(
        self,
        store: TenantStore,
        gateway: ProviderGateway,
        whatsapp: WhatsAppService,
        limiter: SlidingWindowRateLimiter,
        rate_limit: Optional[int] = None,
        rate_window_seconds: Optional[float] = None,
        history_limit: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.gateway = gateway
        self.whatsapp = whatsapp
        self.limiter = limiter
        self.rate_limit = rate_limit if rate_limit is not None else settings.RATE_LIMIT
        self.rate_window_seconds = rate_window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS
        self.history_limit = history_limit if history_limit is not None else settings.HISTORY_LIMIT
        self.clock = clock

    async def handle(self, payload: Mapping[str, Any]) -> PipelineOutcome:
        # 1) Parse
        inbound = parse_inbound(payload)
        if isinstance(inbound, ParseError):
            logger.info("❌ Payload inválido: %s", inbound.reason)
            return PipelineOutcome(400, "invalid_payload")

        sender = inbound.sender_id
        safe = masked(sender)
        text = inbound.body.strip()
        logger.info("📩 Mensaje de %s (%s) | media=%d", inbound.display_name, safe, inbound.attachment_count)

        # 2) Tenant
        tenant = self.store.get_tenant_by_routing_number(inbound.routing_number)
        if tenant is None:
            logger.error("🚨 Ningún tenant para %s ni tenant por defecto", masked(inbound.routing_number))
            return PipelineOutcome(500, "no_tenant")
        reply_from = tenant.routing_number or None
        language = detect_language(text, hint=tenant.language)

        # 3) Rate limit
        if not self.limiter.allow(sender, self.rate_limit, self.rate_window_seconds):
            msg = notice("rate_limited", language)
            await self.whatsapp.send_message(sender, msg, from_number=reply_from)
            return PipelineOutcome(429, "rate_limited", reply=msg)

        # 4) Adjuntos
        if inbound.attachment_count > 0:
            msg = notice("media_unsupported", language)
            await self.whatsapp.send_message(sender, msg, from_number=reply_from)
            return PipelineOutcome(200, "media_unsupported", reply=msg)

        # 5) Vacío
        if not text:
            logger.debug("Mensaje vacío de %s ignorado", safe)
            return PipelineOutcome(200, "ignored_empty")

        # 6) Horario
        if not is_open(tenant, self.clock()):
            msg = notice("closed", language, open_hour=tenant.open_hour, close_hour=tenant.close_hour)
            await self.whatsapp.send_message(sender, msg, from_number=reply_from)
            self.store.append_message(tenant.key, sender, msg, Direction.OUTBOUND, language)
            logger.info("🌙 Fuera de horario | tenant=%s | from=%s", tenant.key, safe)
            return PipelineOutcome(200, "closed", reply=msg)

        # 7) Historial (sin el mensaje actual) y 8) persistir entrada
        history = self.store.get_recent_history(sender, tenant.key, self.history_limit)
        self.store.append_message(tenant.key, sender, text, Direction.INBOUND, language)

        # 9) IA
        result = await self.gateway.generate_reply(text, history, TenantContext.from_tenant(tenant))

        # 10) Persistir salida
        self.store.append_message(tenant.key, sender, result.response, Direction.OUTBOUND, result.language)

        # 11) Enviar
        sent = await self.whatsapp.send_message(sender, result.response, from_number=reply_from)
        if sent.success:
            logger.info("✅ Envío OK | tenant=%s | from=%s | provider=%s", tenant.key, safe, result.provider)
        else:
            logger.error("❌ Falló la entrega | tenant=%s | from=%s | %s", tenant.key, safe, sent.error)

        return PipelineOutcome(
            200,
            "replied" if sent.success else "delivery_failed",
            reply=result.response,
            provider=result.provider,
        )
