"""
🏪 TENANT STORE - PERSISTENCIA DE TENANTS Y MENSAJES
====================================================

Único dueño de las tablas `tenants` y `messages`.

🛡️ POLÍTICA DE FALLOS:
- Lecturas: ante error de BD devuelven vacío/None (nunca lanzan)
- Log de mensajes: se registra y se descarta (no bloquea la entrega)
- Configuración de tenants: se propaga (el admin debe enterarse)

📝 EJEMPLO DE USO:
    store = TenantStore(db)
    tenant = store.get_tenant_by_routing_number("+14155238886")
    history = store.get_recent_history("+8801711000000", tenant.key, limit=5)
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from config.settings import settings
from app.models.tenant import Tenant
from app.models.message import Message, Direction
from app.utils.decorators import db_transaction, best_effort, read_only
from app.utils.phone import normalize_msisdn, masked

logger = logging.getLogger(__name__)

SCHEDULE_FIELDS = (
    "open_hour",
    "close_hour",
    "daily_summary_time",
    "timezone",
    "broadcast_message",
    "broadcast_time",
)


def tenant_zone(tenant: Optional[Tenant]) -> ZoneInfo:
    name = (tenant.timezone if tenant else None) or settings.DEFAULT_TIMEZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Zona horaria desconocida '%s', usando UTC", name)
        return ZoneInfo("UTC")


def _empty_counts() -> Dict[str, int]:
    return {"total": 0, "inbound": 0, "outbound": 0}


class TenantStore:
    def __init__(self, db: Session, default_tenant_key: Optional[str] = None):
        self.db = db
        self.default_tenant_key = default_tenant_key or settings.DEFAULT_TENANT_KEY

    # ---------- Tenants: lectura ----------

    @read_only()
    def get_tenant(self, key: str) -> Optional[Tenant]:
        """Tenant activo por clave; los desactivados no se devuelven."""
        stmt = select(Tenant).where(Tenant.key == key, Tenant.active.is_(True))
        return self.db.execute(stmt).scalar_one_or_none()

    def get_default_tenant(self) -> Optional[Tenant]:
        return self.get_tenant(self.default_tenant_key)

    @read_only()
    def get_tenant_by_routing_number(self, number: str) -> Optional[Tenant]:
        """
        Resuelve el número destino del webhook a un tenant activo.
        Si no hay coincidencia, cae al tenant por defecto.
        """
        routing = normalize_msisdn(number)
        tenant = None
        if routing:
            stmt = (
                select(Tenant)
                .where(Tenant.routing_number == routing, Tenant.active.is_(True))
                .order_by(Tenant.created_at)
                .limit(1)
            )
            tenant = self.db.execute(stmt).scalar_one_or_none()
        if tenant is None:
            logger.debug("Sin tenant para %s, usando '%s'", masked(routing), self.default_tenant_key)
            tenant = self.get_default_tenant()
        return tenant

    @read_only(default=list)
    def list_tenants(self, include_inactive: bool = True) -> List[Tenant]:
        stmt = select(Tenant).order_by(Tenant.created_at)
        if not include_inactive:
            stmt = stmt.where(Tenant.active.is_(True))
        return list(self.db.execute(stmt).scalars())

    # ---------- Tenants: escritura (propaga errores) ----------

    @db_transaction
    def upsert_tenant(
        self,
        key: str,
        name: str,
        routing_number: str,
        instructions: Optional[str] = None,
        language: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Inserta o actualiza en sitio. Los campos opcionales no suministrados
        (None) conservan su valor anterior.
        """
        routing = normalize_msisdn(routing_number)
        tenant = self.db.get(Tenant, key, with_for_update=True)
        if tenant is None:
            tenant = Tenant(
                key=key,
                name=name,
                routing_number=routing,
                instructions=instructions,
                language=language or "en",
                active=True,
            )
            self.db.add(tenant)
            logger.info("🆕 Tenant creado: %s", key)
        else:
            tenant.name = name
            tenant.routing_number = routing
            if instructions is not None:
                tenant.instructions = instructions
            if language is not None:
                tenant.language = language
            logger.info("✏️ Tenant actualizado: %s", key)
        self.db.flush()
        return tenant.to_dict()

    @db_transaction
    def update_schedule(self, key: str, **fields: Any) -> Optional[Dict[str, Any]]:
        """Actualiza solo los campos de horario suministrados. None si no existe."""
        tenant = self.db.get(Tenant, key, with_for_update=True)
        if tenant is None:
            return None
        for field, value in fields.items():
            if field not in SCHEDULE_FIELDS:
                raise ValueError(f"Campo de horario desconocido: {field}")
            setattr(tenant, field, value)
        self.db.flush()
        return tenant.to_dict()

    @db_transaction
    def set_tenant_active(self, key: str, active: bool) -> Optional[Dict[str, Any]]:
        """Desactivación lógica; los tenants nunca se borran."""
        tenant = self.db.get(Tenant, key, with_for_update=True)
        if tenant is None:
            return None
        tenant.active = active
        self.db.flush()
        return tenant.to_dict()

    @db_transaction
    def ensure_default_tenant(self, name: str, routing_number: Optional[str]) -> Dict[str, Any]:
        """Crea el tenant por defecto en el arranque si todavía no existe."""
        tenant = self.db.get(Tenant, self.default_tenant_key)
        if tenant is None:
            tenant = Tenant(
                key=self.default_tenant_key,
                name=name,
                routing_number=normalize_msisdn(routing_number or ""),
                language="en",
                active=True,
            )
            self.db.add(tenant)
            self.db.flush()
            logger.info("👤 Tenant por defecto creado: %s", self.default_tenant_key)
        return tenant.to_dict()

    # ---------- Mensajes ----------

    @best_effort
    def append_message(
        self,
        tenant_key: str,
        sender_id: str,
        body: str,
        direction: Direction,
        language: Optional[str] = None,
    ) -> Optional[int]:
        msg = Message(
            tenant_key=tenant_key,
            sender_id=normalize_msisdn(sender_id),
            direction=Direction(direction).value,
            body=body,
            language=language,
        )
        self.db.add(msg)
        self.db.flush()
        return msg.id

    @read_only(default=list)
    def get_recent_history(self, sender_id: str, tenant_key: str, limit: int) -> List[Dict[str, Any]]:
        """
        Últimos `limit` mensajes en orden CRONOLÓGICO (más antiguo primero).
        El orden alimenta directamente el contexto del proveedor IA.
        """
        if limit <= 0:
            return []
        stmt = (
            select(Message)
            .where(
                Message.tenant_key == tenant_key,
                Message.sender_id == normalize_msisdn(sender_id),
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        rows = list(self.db.execute(stmt).scalars())
        rows.reverse()
        return [
            {
                "body": m.body,
                "direction": m.direction,
                "language": m.language,
                "timestamp": m.created_at,
            }
            for m in rows
        ]

    @read_only(default=_empty_counts)
    def get_today_message_counts(self, tenant_key: str) -> Dict[str, int]:
        """Totales del día calendario actual en la zona horaria del tenant."""
        tenant = self.db.get(Tenant, tenant_key)
        zone = tenant_zone(tenant)
        local_midnight = datetime.now(zone).replace(hour=0, minute=0, second=0, microsecond=0)
        since = local_midnight.astimezone(timezone.utc)

        stmt = (
            select(Message.direction, func.count(Message.id))
            .where(Message.tenant_key == tenant_key, Message.created_at >= since)
            .group_by(Message.direction)
        )
        counts = _empty_counts()
        for direction, n in self.db.execute(stmt):
            counts[direction] = n
        counts["total"] = counts["inbound"] + counts["outbound"]
        return counts

    @read_only(default=set)
    def get_recent_unique_senders(self, tenant_key: str, window_days: int = 30) -> Set[str]:
        """Remitentes con mensajes entrantes en los últimos `window_days` días."""
        since = datetime.now(timezone.utc) - timedelta(days=window_days)
        stmt = (
            select(Message.sender_id)
            .where(
                Message.tenant_key == tenant_key,
                Message.direction == Direction.INBOUND.value,
                Message.created_at >= since,
            )
            .distinct()
        )
        return set(self.db.execute(stmt).scalars())
