def normalize_msisdn(n: str) -> str:
    """
    Normaliza un número de teléfono móvil en formato MSISDN (+<dígitos>).
    Acepta el prefijo de transporte "whatsapp:".
    """
    n = (n or "").strip()
    if n.startswith("whatsapp:"):
        n = n[len("whatsapp:"):]
    n = n.replace(" ", "").replace("-", "")
    if n and not n.startswith("+"):
        n = "+" + n
    return n


def whatsapp_address(n: str) -> str:
    """Dirección que exige Twilio para el canal WhatsApp."""
    n = normalize_msisdn(n)
    return f"whatsapp:{n}"


def masked(num: str) -> str:
    """Enmascara todos los dígitos menos los últimos 4."""
    num = num or ""
    return ("•" * max(len(num) - 4, 0)) + num[-4:]
