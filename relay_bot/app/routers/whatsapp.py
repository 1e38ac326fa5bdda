from fastapi import APIRouter, Depends, Request, HTTPException
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
import json
import logging

from config.settings import settings
from app.dependencies import get_pipeline
from app.services.pipeline import InboundPipeline
from app.services.whatsapp_service import WhatsAppService


router = APIRouter()
limiter = Limiter(key_func=get_remote_address)
logger = logging.getLogger(__name__)


def effective_url(request: Request) -> str:
    """Reconstruye la URL firmada por Twilio (respeta proxy y querystring)."""
    host = request.headers.get("x-forwarded-host") or request.url.hostname
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    path = request.url.path
    query = f"?{request.url.query}" if request.url.query else ""
    return f"{proto}://{host}{path}{query}"


async def _run(pipeline: InboundPipeline, payload) -> JSONResponse:
    try:
        outcome = await pipeline.handle(payload)
    except Exception:
        logger.exception("❌ Error inesperado procesando webhook")
        return JSONResponse({"status": "error"}, status_code=500)
    return JSONResponse({"status": outcome.status}, status_code=outcome.status_code)


@router.post("")
@limiter.limit("200/minute") #SlowAPI
async def whatsapp_webhook_form(
    request: Request,
    pipeline: InboundPipeline = Depends(get_pipeline),
):
    # ✅ Validación de firma (form) usando FormData crudo
    form_data = await request.form()
    if not settings.DISABLE_WEBHOOK_VALIDATION:
        signature = request.headers.get("X-Twilio-Signature", "")
        url = effective_url(request)
        if not WhatsAppService.validate_webhook(url, form_data, signature):
            logger.info("❌ Twilio signature invalid (form) url=%s sig_present=%s", url, bool(signature))
            raise HTTPException(status_code=403, detail="Invalid signature")

    return await _run(pipeline, form_data)


@router.post("/json")
@limiter.limit("200/minute")
async def whatsapp_webhook_json(
    request: Request,
    pipeline: InboundPipeline = Depends(get_pipeline),
):
    # ✅ Validación de firma (JSON) con raw body exacto
    raw = await request.body()
    if not settings.DISABLE_WEBHOOK_VALIDATION:
        signature = request.headers.get("X-Twilio-Signature", "")
        algo = request.headers.get("X-Twilio-Signature-Algorithm")
        url = effective_url(request)
        if not WhatsAppService.validate_webhook_json(url, raw, signature, algo):
            logger.info("❌ Twilio signature invalid (json) url=%s sig_present=%s", url, bool(signature))
            raise HTTPException(status_code=403, detail="Invalid signature")

    try:
        payload = json.loads(raw or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="JSON inválido")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Se esperaba un objeto JSON")

    return await _run(pipeline, payload)
