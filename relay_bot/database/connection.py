"""
🗄️ CONEXIÓN A BASE DE DATOS - CONFIGURACIÓN SQLALCHEMY
======================================================

Este módulo configura la conexión a PostgreSQL con pooling acotado,
gestión de sesiones y la base declarativa para los modelos ORM.

🏗️ CONFIGURACIÓN DEL POOL:
- Pool permanente: DB_POOL_SIZE conexiones (10 por defecto)
- Overflow: DB_MAX_OVERFLOW conexiones bajo demanda (20 por defecto)
- Pre-ping: Verificación automática de conexiones
- Recycle: Renovación cada hora (3600s)

🔧 SQLITE (desarrollo / tests):
- Una sola conexión compartida (StaticPool)
- check_same_thread=False porque FastAPI usa threads para dependencias sync

📊 GESTIÓN DE SESIONES:
- SessionLocal: Factory de sesiones por request / por mensaje
- autocommit=False: Control manual de transacciones
- autoflush=False
- Cierre automático en dependency

📝 USO CON FASTAPI:
    from database.connection import get_db

    @app.post("/endpoint")
    def endpoint(db: Session = Depends(get_db)):
        ...
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import QueuePool, StaticPool
from config.settings import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(url: str):
    if url.startswith("sqlite"):
        return create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=settings.DB_POOL_SIZE,        # Conexiones permanentes en el pool
        max_overflow=settings.DB_MAX_OVERFLOW,  # Conexiones adicionales cuando el pool está lleno
        pool_pre_ping=True,                     # Verificar conexiones antes de usar
        pool_recycle=3600,                      # Reciclar conexiones cada hora
        echo=False,                             # True para ver SQL en debug
        connect_args={
            "connect_timeout": 10,              # Timeout de conexión en segundos
        } if "postgresql" in url else {},
    )


# Crear motor de base de datos
engine = build_engine(settings.DATABASE_URL)

# Crear sesión local
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base para modelos usando el nuevo estilo de declaración
Base = declarative_base()


def init_db() -> None:
    """Crea las tablas si no existen (desarrollo; en producción usar Alembic)."""
    # Importar modelos para registrarlos en Base.metadata
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("🗄️ Tablas verificadas en %s", engine.url.get_backend_name())


# Dependencia para obtener sesión de BD
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
