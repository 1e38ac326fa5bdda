"""
Textos localizados (en / bn) y detección de idioma.

La detección es una heurística gruesa: cualquier carácter del bloque
Unicode bengalí (U+0980–U+09FF) => "bn", si no => "en". Un texto sin letras
(solo emoji o números) usa el idioma preferido del tenant si se indica.
"""

import re
from typing import Dict, Optional

DEFAULT_LANGUAGE = "en"

_BENGALI = re.compile(r"[\u0980-\u09FF]")


def detect_language(text: str, hint: Optional[str] = None) -> str:
    text = text or ""
    if _BENGALI.search(text):
        return "bn"
    # Sin letras (emoji, números): no hay evidencia, manda el idioma del tenant
    if hint in SYSTEM_PROMPTS and not any(ch.isalpha() for ch in text):
        return hint
    return DEFAULT_LANGUAGE


SYSTEM_PROMPTS: Dict[str, str] = {
    "en": (
        "You are a helpful and friendly WhatsApp assistant for {BUSINESS_NAME}.\n\n"
        "Your responsibilities:\n"
        "- Answer customer questions about products, services, and business information\n"
        "- Help with orders, bookings, and reservations\n"
        "- Provide accurate information in a conversational, friendly tone\n"
        "- Keep responses concise (2-4 sentences) since this is WhatsApp\n"
        "- If you don't know something, politely say so and offer to connect them with a human\n\n"
        "Be professional, warm, and helpful!"
    ),
    "bn": (
        "আপনি {BUSINESS_NAME} এর একজন সহায়ক এবং বন্ধুত্বপূর্ণ WhatsApp সহায়ক।\n\n"
        "আপনার দায়িত্ব:\n"
        "- পণ্য, সেবা এবং ব্যবসা সম্পর্কে গ্রাহকদের প্রশ্নের উত্তর দিন\n"
        "- অর্ডার, বুকিং এবং সংরক্ষণে সাহায্য করুন\n"
        "- কথোপকথন এবং বন্ধুত্বপূর্ণ সুরে সঠিক তথ্য প্রদান করুন\n"
        "- যেহেতু এটি WhatsApp, উত্তর সংক্ষিপ্ত রাখুন (২-৪ বাক্য)\n"
        "- যদি আপনি কিছু না জানেন, ভদ্রভাবে বলুন এবং তাদের একজন মানুষের সাথে সংযুক্ত করার প্রস্তাব দিন\n\n"
        "পেশাদার, উষ্ণ এবং সহায়ক হন!"
    ),
}

NOTICES: Dict[str, Dict[str, str]] = {
    "fallback": {
        "en": "I apologize, but I'm having trouble processing your message right now. "
              "Please try again in a moment, or contact us directly for immediate assistance.",
        "bn": "দুঃখিত, আমি এই মুহূর্তে আপনার বার্তা প্রক্রিয়া করতে সমস্যা হচ্ছে। "
              "অনুগ্রহ করে কিছুক্ষণ পরে আবার চেষ্টা করুন, অথবা তাৎক্ষণিক সহায়তার জন্য আমাদের সরাসরি যোগাযোগ করুন।",
    },
    "rate_limited": {
        "en": "⚠️ Sorry, you have exceeded the message limit. Please try again later.",
        "bn": "⚠️ দুঃখিত, আপনি অনেকগুলি বার্তা পাঠিয়েছেন। অনুগ্রহ করে কিছুক্ষণ পরে আবার চেষ্টা করুন।",
    },
    "media_unsupported": {
        "en": "🖼️ Sorry, I cannot process images or videos yet. Please send your question as text.",
        "bn": "🖼️ দুঃখিত, আমি এখনও ছবি বা ভিডিও প্রক্রিয়া করতে পারি না। অনুগ্রহ করে আপনার প্রশ্ন টেক্সটে লিখুন।",
    },
    "closed": {
        "en": "We are currently closed.\nHours: {open_hour:02d}:00–{close_hour:02d}:00",
        "bn": "আমরা এখন বন্ধ আছি।\nসময়: {open_hour:02d}:00–{close_hour:02d}:00",
    },
}


def system_prompt(language: str) -> str:
    return SYSTEM_PROMPTS.get(language) or SYSTEM_PROMPTS[DEFAULT_LANGUAGE]


def notice(kind: str, language: str, **params) -> str:
    texts = NOTICES[kind]
    template = texts.get(language) or texts[DEFAULT_LANGUAGE]
    return template.format(**params) if params else template
