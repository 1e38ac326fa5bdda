"""
🔧 DECORADORES DE TRANSACCIONES PARA EL TENANT STORE
===================================================

Tres políticas de fallo, una por tipo de operación:

- @db_transaction   → escrituras críticas (config de tenants): commit, o
                      rollback + log + RE-LANZA la excepción.
- @best_effort      → escrituras no críticas (log de mensajes): commit, o
                      rollback + log + devuelve None. Nunca bloquea la entrega.
- @read_only(...)   → lecturas: sin commit; ante error rollback + log y
                      devuelve un valor vacío por defecto.

ANTES (código repetitivo):
    def append_message(self, ...):
        try:
            self.db.add(...)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error: {e}")

DESPUÉS (con decorador):
    @best_effort
    def append_message(self, ...):
        self.db.add(...)

Todos asumen un método de instancia con atributo `self.db` (Session).
"""

import logging
import re
from functools import wraps
from typing import Callable, Any

logger = logging.getLogger(__name__)


def _mask_sensitive_data(data: Any) -> str:
    """
    🔒 Enmascara datos sensibles en logs para proteger PII

    Args:
        data: Datos a enmascarar (args, kwargs, etc.)

    Returns:
        String seguro para logging sin datos sensibles
    """
    data_str = str(data)

    # Números de teléfono (con o sin prefijo whatsapp:)
    data_str = re.sub(
        r"(whatsapp:)?\+?\d[\d\s-]{5,}(\d{4})",
        lambda m: "***" + m.group(2),
        data_str,
    )

    # Otros campos sensibles comunes
    sensitive_fields = ['password', 'token', 'api_key', 'secret']
    for field in sensitive_fields:
        pattern = rf"('{field}'):\s*'([^']+)'"
        data_str = re.sub(pattern, r"\1: '***MASKED***'", data_str, flags=re.IGNORECASE)

    return data_str


def db_transaction(func: Callable) -> Callable:
    """
    🎯 Escrituras críticas: commit automático, rollback y re-lanza en error.

    📝 EJEMPLO:
        @db_transaction
        def upsert_tenant(self, key, name, ...):
            tenant = ...
            return tenant.to_dict()  # commit automático
    """
    @wraps(func)
    def wrapper(self, *args, **kwargs) -> Any:
        try:
            result = func(self, *args, **kwargs)
            self.db.commit()
            logger.debug("✅ Transacción exitosa en %s", func.__name__)
            return result
        except Exception as e:
            self.db.rollback()
            logger.error("❌ Error en %s: %s", func.__name__, e)
            logger.debug("   Args: %s", _mask_sensitive_data(args))
            logger.debug("   Kwargs: %s", _mask_sensitive_data(kwargs))
            raise

    return wrapper


def best_effort(func: Callable) -> Callable:
    """
    📝 Escrituras no críticas: un fallo de BD se registra y se descarta.

    Disponibilidad del chat > completitud del log.
    """
    @wraps(func)
    def wrapper(self, *args, **kwargs) -> Any:
        try:
            result = func(self, *args, **kwargs)
            self.db.commit()
            return result
        except Exception as e:
            self.db.rollback()
            logger.warning("⚠️ Escritura descartada en %s: %s", func.__name__, e)
            logger.debug("   Args: %s", _mask_sensitive_data(args))
            return None

    return wrapper


def read_only(default: Callable[[], Any] = lambda: None) -> Callable:
    """
    📖 Decorador para operaciones de solo lectura

    ✅ QUÉ HACE:
    - NO hace commit (no modifica datos)
    - SÍ hace rollback si hay error (limpia transacción)
    - Devuelve default() en vez de propagar el error

    📝 EJEMPLO:
        @read_only(default=list)
        def get_recent_history(self, sender_id, tenant_key, limit):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(self, *args, **kwargs) -> Any:
            try:
                return func(self, *args, **kwargs)
            except Exception as e:
                self.db.rollback()
                logger.error("❌ Error en consulta %s: %s", func.__name__, e)
                logger.debug("   Args: %s", _mask_sensitive_data(args))
                return default()

        return wrapper
    return decorator
