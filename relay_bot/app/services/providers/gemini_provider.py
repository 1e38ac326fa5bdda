from typing import Any, Dict, List, Optional

import httpx

from config.settings import settings
from app.services.providers.base import ProviderAdapter, ProviderError, TokenUsage, Turn


class GeminiProvider(ProviderAdapter):
    """Google Gemini vía REST (generateContent); no todas las respuestas traen usage."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(api_key or settings.GEMINI_API_KEY, model or settings.GEMINI_MODEL)
        self.base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")
        self._client = client

    def build_request(self, system_prompt: str, turns: List[Turn]) -> Dict[str, Any]:
        contents = [
            {
                "role": "user" if t["role"] == "user" else "model",
                "parts": [{"text": t["content"]}],
            }
            for t in turns
        ]
        return {
            "contents": contents,
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "generationConfig": {
                "temperature": 0.7,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": 500,
            },
        }

    async def send(self, request: Dict[str, Any]) -> Any:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        if self._client is not None:
            resp = await self._client.post(url, params={"key": self.api_key}, json=request)
        else:
            async with httpx.AsyncClient(timeout=settings.AI_TIMEOUT_SECONDS) as client:
                resp = await client.post(url, params={"key": self.api_key}, json=request)

        if resp.status_code != 200:
            try:
                detail = resp.json().get("error", {}).get("message", resp.text[:200])
            except ValueError:
                detail = resp.text[:200]
            raise ProviderError(self.name, f"HTTP {resp.status_code}: {detail}")
        return resp.json()

    def extract_text(self, raw: Any) -> str:
        candidates = raw.get("candidates") or []
        if not candidates:
            return ""
        parts = candidates[0].get("content", {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts)

    def extract_usage(self, raw: Any) -> Optional[TokenUsage]:
        meta = raw.get("usageMetadata")
        if not meta:
            return None
        pt = meta.get("promptTokenCount", 0)
        ct = meta.get("candidatesTokenCount", 0)
        return TokenUsage(input=pt, output=ct, total=meta.get("totalTokenCount", pt + ct))
