"""
🚦 THROTTLE SERVICE - LÍMITE POR REMITENTE (VENTANA DESLIZANTE)
==============================================================

Contador en memoria, por proceso. Es mitigación de abuso, no una garantía:
- Se pierde al reiniciar el proceso
- Dos mensajes simultáneos del mismo remitente pueden contar de más/de menos
  (no hay lock; el mapa es consultivo)

📝 EJEMPLO DE USO:
    if not rate_limiter.allow("+8801711000000", limit=50, window_seconds=3600):
        # avisar al usuario y cortar
        ...
"""

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Deque, Dict

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}

    def _prune(self, sender_id: str, window_seconds: float, now: float) -> Deque[float]:
        hits = self._hits.get(sender_id)
        if hits is None:
            return deque()
        while hits and now - hits[0] >= window_seconds:
            hits.popleft()
        return hits

    def allow(self, sender_id: str, limit: int, window_seconds: float) -> bool:
        """
        Descarta marcas fuera de la ventana y acepta si quedan < limit.
        Solo las llamadas aceptadas registran su marca de tiempo.
        """
        now = self._clock()
        hits = self._prune(sender_id, window_seconds, now)
        if len(hits) >= limit:
            logger.warning("⚠️ Rate limit excedido (%d/%d)", len(hits), limit)
            return False
        hits.append(now)
        self._hits[sender_id] = hits
        return True

    def status(self, sender_id: str, limit: int, window_seconds: float) -> Dict[str, int]:
        hits = self._prune(sender_id, window_seconds, self._clock())
        return {
            "count": len(hits),
            "limit": limit,
            "remaining": max(limit - len(hits), 0),
        }

    def sweep(self, window_seconds: float) -> int:
        """Elimina remitentes sin actividad dentro de la ventana. Devuelve cuántos."""
        now = self._clock()
        idle = [
            sender for sender, hits in list(self._hits.items())
            if not self._prune(sender, window_seconds, now)
        ]
        for sender in idle:
            self._hits.pop(sender, None)
        if idle:
            logger.info("🧹 Rate limit: limpiados %d remitentes", len(idle))
        return len(idle)

    async def run_sweeper(self, interval_seconds: float, window_seconds: float) -> None:
        """Tarea periódica (lifespan de la app); no bloquea allow()."""
        while True:
            await asyncio.sleep(interval_seconds)
            self.sweep(window_seconds)

    def __len__(self) -> int:
        return len(self._hits)


rate_limiter = SlidingWindowRateLimiter()
