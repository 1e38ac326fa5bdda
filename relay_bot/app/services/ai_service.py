"""
🤖 PROVIDER GATEWAY - CEREBRO DEL RELAY
=======================================

Convierte el texto de un usuario de WhatsApp + su historial en una respuesta
generada por uno de varios proveedores IA alojados.

🔄 FLUJO PRINCIPAL:
1. Detectar idioma (bn / en)
2. Armar system prompt (instrucciones del tenant o plantilla localizada)
3. Convertir historial a turnos user/assistant en orden cronológico
4. Intentar proveedores en orden de prioridad (primario primero, luego
   cualquier otro con credenciales)
5. Si todos fallan → disculpa localizada con success=False

⚡ MÁQUINA DE ESTADOS (por llamada):
    NotStarted → TryingProvider(i) → Success | TryingProvider(i+1) | ExhaustedFallback

🛡️ ROBUSTEZ:
- Timeout por intento (AI_TIMEOUT_SECONDS, 30s por defecto)
- Un fallo lógico pasa al siguiente proveedor; nunca reintenta el mismo
- Sin efectos secundarios fuera de la llamada HTTP (no toca la BD)

🔀 CAMBIO DE PROVEEDOR:
- generate_reply(..., primary="gemini")  → solo para esa llamada
- gateway.with_primary("anthropic")     → gateway nuevo; quien lo guarde
  define su vida útil (la app lo guarda en app.state hasta reiniciar)

📝 EJEMPLO DE USO:
    gateway = ProviderGateway.from_settings()
    reply = await gateway.generate_reply("Hi!", history, TenantContext("Cafe Uno"))
    # reply.provider == "openai", reply.language == "en"
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from config.settings import settings
from app.models.message import Direction
from app.services.providers import (
    PROVIDER_ALIASES,
    PROVIDER_CLASSES,
    ProviderAdapter,
    ProviderReply,
)
from app.utils.i18n import detect_language, notice, system_prompt

logger = logging.getLogger(__name__)


@dataclass
class TenantContext:
    business_name: Optional[str] = None
    instructions: Optional[str] = None
    language: Optional[str] = None

    @classmethod
    def from_tenant(cls, tenant) -> "TenantContext":
        if tenant is None:
            return cls()
        return cls(
            business_name=tenant.name,
            instructions=tenant.instructions,
            language=tenant.language,
        )


def canonical_provider(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    name = name.strip().lower()
    return PROVIDER_ALIASES.get(name, name)


class ProviderGateway:
    def __init__(
        self,
        adapters: Sequence[ProviderAdapter],
        primary: Optional[str] = None,
        timeout: Optional[float] = None,
        default_business_name: Optional[str] = None,
    ):
        if not adapters:
            raise ValueError("Se requiere al menos un proveedor")
        self.adapters: Dict[str, ProviderAdapter] = {a.name: a for a in adapters}
        self.primary = canonical_provider(primary) or adapters[0].name
        if self.primary not in self.adapters:
            raise ValueError(f"Proveedor desconocido: {primary}")
        self.timeout = timeout if timeout is not None else settings.AI_TIMEOUT_SECONDS
        self.default_business_name = default_business_name or settings.BUSINESS_NAME

    @classmethod
    def from_settings(cls, primary: Optional[str] = None) -> "ProviderGateway":
        adapters = [provider_cls() for provider_cls in PROVIDER_CLASSES.values()]
        return cls(adapters, primary=primary or settings.AI_PROVIDER)

    def with_primary(self, name: str) -> "ProviderGateway":
        """Copia del gateway con otro primario; los adapters se comparten."""
        return ProviderGateway(
            list(self.adapters.values()),
            primary=name,
            timeout=self.timeout,
            default_business_name=self.default_business_name,
        )

    # ---------- Composición del prompt ----------

    def build_system_prompt(self, language: str, context: TenantContext) -> str:
        business_name = context.business_name or self.default_business_name
        template = context.instructions or system_prompt(language)
        return template.replace("{BUSINESS_NAME}", business_name)

    @staticmethod
    def build_turns(history: Sequence[Dict[str, Any]], user_text: str) -> List[Dict[str, str]]:
        """
        Historial (ya cronológico) → turnos user/assistant alternos, empezando
        por "user"; el mensaje nuevo va al final.

        La ventana puede empezar a mitad de un intercambio y un aviso de cerrado
        queda como "assistant" suelto: se descartan los "assistant" iniciales y
        se fusionan roles repetidos. Todos los proveedores reciben lo mismo.
        """
        rows = [
            (Direction(h["direction"]).role, h["body"])
            for h in history
            if h.get("body")
        ]
        rows.append(("user", user_text))

        turns: List[Dict[str, str]] = []
        for role, content in rows:
            if not turns and role != "user":
                continue
            if turns and turns[-1]["role"] == role:
                turns[-1] = {"role": role, "content": f"{turns[-1]['content']}\n{content}"}
            else:
                turns.append({"role": role, "content": content})
        return turns

    def chain(self, primary: Optional[str] = None) -> List[ProviderAdapter]:
        """Primario primero (aunque no tenga credenciales), luego los configurados."""
        first = canonical_provider(primary) or self.primary
        ordered: List[ProviderAdapter] = []
        if first in self.adapters:
            ordered.append(self.adapters[first])
        else:
            logger.warning("⚠️ Proveedor desconocido '%s', se ignora", first)
        for name, adapter in self.adapters.items():
            if name != first and adapter.is_configured():
                ordered.append(adapter)
        return ordered

    # ---------- Generación ----------

    async def generate_reply(
        self,
        user_text: str,
        history: Sequence[Dict[str, Any]] = (),
        context: Optional[TenantContext] = None,
        primary: Optional[str] = None,
    ) -> ProviderReply:
        context = context or TenantContext()
        language = detect_language(user_text, hint=context.language)
        prompt = self.build_system_prompt(language, context)
        turns = self.build_turns(history, user_text)

        last_error: Optional[str] = None
        for i, adapter in enumerate(self.chain(primary)):
            try:
                text, usage = await asyncio.wait_for(
                    adapter.complete(prompt, turns), timeout=self.timeout
                )
            except asyncio.TimeoutError:
                last_error = f"[{adapter.name}] timeout tras {self.timeout:.0f}s"
                logger.warning("⏱️ %s", last_error)
                continue
            except Exception as e:
                last_error = str(e) or e.__class__.__name__
                logger.warning("❌ Proveedor %s falló (intento %d): %s", adapter.name, i + 1, last_error)
                continue

            if i > 0:
                logger.info("🔄 Respuesta obtenida vía fallback: %s", adapter.name)
            if usage:
                logger.info("📊 Tokens %s: %d (in=%d, out=%d)", adapter.name, usage.total, usage.input, usage.output)
            return ProviderReply(
                success=True,
                response=text.strip(),
                language=language,
                provider=adapter.name,
                model=adapter.model,
                usage=usage,
            )

        logger.error("🚨 Todos los proveedores fallaron: %s", last_error)
        return ProviderReply(
            success=False,
            response=notice("fallback", language),
            language=language,
            error=last_error or "no hay proveedores disponibles",
        )

    def provider_info(self) -> Dict[str, Any]:
        current = self.adapters[self.primary]
        return {
            "current": self.primary,
            "model": current.model,
            "configured": {name: a.is_configured() for name, a in self.adapters.items()},
            "timeoutSeconds": self.timeout,
        }
