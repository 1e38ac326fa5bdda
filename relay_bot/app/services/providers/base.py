"""
Interfaz común de proveedores IA.

Cada proveedor traduce el mismo par (system_prompt, turns) a su propio
formato HTTP/SDK. El gateway solo conoce esta interfaz: agregar un proveedor
nuevo = implementar un adapter, nunca ramificar en el orquestador.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Turno conversacional neutral: {"role": "user"|"assistant", "content": "..."}
Turn = Dict[str, str]


class ProviderError(Exception):
    """Fallo lógico de un proveedor (sin credenciales, respuesta vacía, etc.)."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"[{provider}] {message}")
        self.provider = provider


@dataclass
class TokenUsage:
    input: int
    output: int
    total: int


@dataclass
class ProviderReply:
    success: bool
    response: str
    language: str
    provider: Optional[str] = None
    model: Optional[str] = None
    usage: Optional[TokenUsage] = None
    error: Optional[str] = None


class ProviderAdapter(ABC):
    name: str = "base"

    def __init__(self, api_key: Optional[str], model: str):
        self.api_key = api_key
        self.model = model

    def is_configured(self) -> bool:
        return bool(self.api_key)

    @abstractmethod
    def build_request(self, system_prompt: str, turns: List[Turn]) -> Dict[str, Any]:
        """Payload específico del proveedor."""

    @abstractmethod
    async def send(self, request: Dict[str, Any]) -> Any:
        """Una sola llamada de red; sin reintentos lógicos."""

    @abstractmethod
    def extract_text(self, raw: Any) -> str:
        ...

    def extract_usage(self, raw: Any) -> Optional[TokenUsage]:
        return None

    async def complete(self, system_prompt: str, turns: List[Turn]) -> Tuple[str, Optional[TokenUsage]]:
        if not self.is_configured():
            raise ProviderError(self.name, "API key no configurada")

        request = self.build_request(system_prompt, turns)
        logger.debug("🤖 Llamando a %s (%s)", self.name, self.model)
        raw = await self.send(request)

        text = (self.extract_text(raw) or "").strip()
        if not text:
            raise ProviderError(self.name, "respuesta vacía")
        return text, self.extract_usage(raw)
