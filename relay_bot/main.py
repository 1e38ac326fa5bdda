from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from app.routers import whatsapp, admin
from app.services.ai_service import ProviderGateway
from app.services.tenant_store import TenantStore
from app.services.throttle_service import rate_limiter
from config.settings import settings
from database.connection import SessionLocal, init_db
from contextlib import asynccontextmanager
import asyncio
import logging

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _seed_default_tenant() -> None:
    db = SessionLocal()
    try:
        TenantStore(db).ensure_default_tenant(settings.DEFAULT_TENANT_NAME, settings.TWILIO_WHATSAPP_NUMBER)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tablas + tenant por defecto
    init_db()
    _seed_default_tenant()

    gateway = ProviderGateway.from_settings()
    app.state.provider_gateway = gateway
    info = gateway.provider_info()
    logger.info("🔧 Proveedor IA: %s (%s)", info["current"], info["model"])
    for name, ok in info["configured"].items():
        logger.info("   %s key: %s", name, "✅ configurada" if ok else "❌ falta")
    if not info["configured"].get(info["current"]):
        logger.warning("⚠️ El proveedor primario %s no tiene API key", info["current"])

    sweeper = asyncio.create_task(
        rate_limiter.run_sweeper(settings.RATE_LIMIT_SWEEP_SECONDS, settings.RATE_LIMIT_WINDOW_SECONDS)
    )
    yield
    # shutdown
    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass
    logger.info("👋 Relay detenido")


app = FastAPI(
    title="WhatsApp AI Relay",
    description="Relay multi-tenant entre WhatsApp (Twilio) y proveedores IA",
    version="2.0.0",
    lifespan=lifespan,
    debug=settings.DEBUG
)

# Rate limiting por IP en el webhook (slowapi)
app.state.limiter = whatsapp.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # Los clientes admin esperan 400 con el detalle
    return JSONResponse({"detail": jsonable_encoder(exc.errors())}, status_code=400)


# Configurar CORS más específico para producción
if settings.DEBUG:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.PUBLIC_URL],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )

# Incluir routers
app.include_router(whatsapp.router, prefix="/webhook", tags=["webhook"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])


@app.get("/")
async def root():
    return {
        "message": "WhatsApp AI Relay funcionando!",
        "docs": "/docs",
        "status": "activo",
        "endpoints": {"webhook": "/webhook", "admin": "/admin"},
    }

@app.get("/health")
async def health_check(request: Request):
    gateway = getattr(request.app.state, "provider_gateway", None)
    return {
        "status": "healthy",
        "service": "wa-relay",
        "aiProvider": gateway.provider_info() if gateway else settings.AI_PROVIDER,
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="debug" if settings.DEBUG else "info")
