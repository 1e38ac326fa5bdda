from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from config.settings import settings
from app.services.providers.base import ProviderAdapter, TokenUsage, Turn


class OpenAIProvider(ProviderAdapter):
    name = "openai"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client: Optional[AsyncOpenAI] = None):
        super().__init__(api_key or settings.OPENAI_API_KEY, model or settings.OPENAI_MODEL)
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        # 🔧 Cliente async nativo; sin reintentos internos (el gateway hace fallback)
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key, max_retries=0)
        return self._client

    def build_request(self, system_prompt: str, turns: List[Turn]) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}, *turns],
            "max_tokens": 500,
            "temperature": 0.7,
            "top_p": 1,
            "frequency_penalty": 0.3,
            "presence_penalty": 0.3,
        }

    async def send(self, request: Dict[str, Any]) -> Any:
        return await self.client.chat.completions.create(**request)

    def extract_text(self, raw: Any) -> str:
        return raw.choices[0].message.content or ""

    def extract_usage(self, raw: Any) -> Optional[TokenUsage]:
        usage = getattr(raw, "usage", None)
        if usage is None:
            return None
        return TokenUsage(
            input=usage.prompt_tokens,
            output=usage.completion_tokens,
            total=usage.total_tokens,
        )
