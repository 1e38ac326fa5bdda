from twilio.rest import Client
from twilio.http.http_client import TwilioHttpClient
from twilio.request_validator import RequestValidator
from config.settings import settings
from app.utils.phone import normalize_msisdn, whatsapp_address, masked
import anyio
import hmac
import hashlib
import base64
from dataclasses import dataclass, field
from typing import Optional, Union, Any, Mapping, List
from starlette.datastructures import FormData
import logging

logger = logging.getLogger(__name__)

# Códigos Twilio frecuentes → pista para el log
TWILIO_ERROR_HINTS = {
    21608: "El destinatario no se unió al sandbox de Twilio",
    21211: "Formato de número inválido",
}

DEFAULT_DISPLAY_NAME = "Unknown"


@dataclass
class InboundMessage:
    sender_id: str
    routing_number: str
    body: str
    attachment_count: int = 0
    display_name: str = DEFAULT_DISPLAY_NAME
    message_sid: Optional[str] = None
    media: List[dict] = field(default_factory=list)


@dataclass
class ParseError:
    reason: str


@dataclass
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    code: Optional[int] = None


def _as_int(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def parse_inbound(payload: Union[FormData, Mapping[str, Any]]) -> Union[InboundMessage, ParseError]:
    """
    Payload del webhook (form o JSON de Twilio) → InboundMessage.
    Nunca lanza: sin remitente o sin número destino devuelve ParseError.
    """
    if payload is None:
        return ParseError("payload vacío")
    try:
        data = dict(payload)
    except (TypeError, ValueError):
        return ParseError("payload no es un mapping")

    sender = normalize_msisdn(str(data.get("From") or ""))
    routing = normalize_msisdn(str(data.get("To") or ""))
    if not sender:
        return ParseError("falta From")
    if not routing:
        return ParseError("falta To")

    num_media = _as_int(data.get("NumMedia"))
    media = [
        {"url": data.get(f"MediaUrl{i}"), "type": data.get(f"MediaContentType{i}")}
        for i in range(num_media)
    ]

    return InboundMessage(
        sender_id=sender,
        routing_number=routing,
        body=str(data.get("Body") or ""),
        attachment_count=num_media,
        display_name=str(data.get("ProfileName") or DEFAULT_DISPLAY_NAME),
        message_sid=data.get("MessageSid") or data.get("SmsMessageSid"),
        media=media,
    )


class WhatsAppService:
    def __init__(self, client: Optional[Client] = None, from_number: Optional[str] = None):
        self._client = client
        self.from_number = from_number

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(
                settings.TWILIO_ACCOUNT_SID,
                settings.TWILIO_AUTH_TOKEN,
                http_client=TwilioHttpClient(timeout=settings.SEND_TIMEOUT_SECONDS),
            )
        return self._client

    async def send_message(self, to_number: str, body: str, from_number: Optional[str] = None) -> SendResult:
        """
        Envía texto por WhatsApp. Nunca lanza: siempre devuelve SendResult.
        `from_number` permite responder desde el número del tenant.
        """
        sender = from_number or self.from_number or settings.TWILIO_WHATSAPP_NUMBER
        if not sender:
            logger.error("❌ Sin número remitente configurado (TWILIO_WHATSAPP_NUMBER)")
            return SendResult(success=False, error="remitente no configurado")

        def _send():
            msg = self.client.messages.create(
                from_=whatsapp_address(sender),
                to=whatsapp_address(to_number),
                body=body,
            )
            return msg.sid

        try:
            sid = await anyio.to_thread.run_sync(_send)
        except Exception as e:
            code = getattr(e, "code", None)
            detail = getattr(e, "msg", None) or str(e)
            logger.error("❌ Error enviando WhatsApp a %s: %s", masked(normalize_msisdn(to_number)), detail)
            if code in TWILIO_ERROR_HINTS:
                logger.error("   → %s", TWILIO_ERROR_HINTS[code])
            return SendResult(success=False, error=detail, code=code)

        logger.info("✅ WhatsApp enviado a %s | sid=%s", masked(normalize_msisdn(to_number)), sid)
        return SendResult(success=True, message_id=sid)

    # ---------- Validación de firma ----------

    @staticmethod
    def _b64_hmac(data: bytes, key: str, algo: Optional[str]) -> str:
        alg = (algo or "SHA1").upper()
        if alg == "SHA256":
            digest = hmac.new(key.encode("utf-8"), data, hashlib.sha256).digest()
        else:
            digest = hmac.new(key.encode("utf-8"), data, hashlib.sha1).digest()
        return base64.b64encode(digest).decode("utf-8")

    @staticmethod
    def _safe_eq(a: str, b: str) -> bool:
        try:
            return hmac.compare_digest(a, b)
        except TypeError:
            return False

    @staticmethod
    def validate_webhook(
        url: str,
        form: Union[FormData, Mapping[str, Any]],
        signature: str,
    ) -> bool:
        """
        Valida firmas Twilio para application/x-www-form-urlencoded
        usando el validador oficial (maneja orden/encoding).
        """
        if not settings.TWILIO_AUTH_TOKEN or not signature or not url:
            logger.debug(
                "Missing validation data (form) url=%s sig=%s token=%s",
                url, bool(signature), bool(settings.TWILIO_AUTH_TOKEN)
            )
            return False

        try:
            validator = RequestValidator(settings.TWILIO_AUTH_TOKEN)
            is_valid = validator.validate(url, dict(form), signature)
            logger.debug("Twilio form signature valid=%s url=%s", is_valid, url)
            return is_valid
        except Exception as e:
            logger.exception("Validation error (form): %s", e)
            return False

    @staticmethod
    def validate_webhook_json(
        url: str,
        raw_body: Union[bytes, bytearray, str],
        signature: str,
        signature_algo: Optional[str] = None,
    ) -> bool:
        """
        Valida firmas para application/json:
        string_to_sign = url + raw_body (bytes exactos), SHA1 o SHA256.
        """
        if not settings.TWILIO_AUTH_TOKEN or not signature or not url:
            return False

        body_bytes = raw_body.encode("utf-8") if isinstance(raw_body, str) else bytes(raw_body or b"")
        computed = WhatsAppService._b64_hmac(
            url.encode("utf-8") + body_bytes, settings.TWILIO_AUTH_TOKEN, signature_algo
        )
        ok = WhatsAppService._safe_eq(computed, signature)
        logger.debug("Twilio JSON signature valid=%s url=%s algo=%s", ok, url, signature_algo or "SHA1")
        return ok


# Instancia compartida: un solo cliente Twilio (y su sesión HTTP) por proceso
whatsapp_service = WhatsAppService()
