from typing import Any, Dict, List, Optional

from anthropic import AsyncAnthropic

from config.settings import settings
from app.services.providers.base import ProviderAdapter, TokenUsage, Turn


class AnthropicProvider(ProviderAdapter):
    name = "anthropic"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client: Optional[AsyncAnthropic] = None):
        super().__init__(api_key or settings.ANTHROPIC_API_KEY, model or settings.CLAUDE_MODEL)
        self._client = client

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic(api_key=self.api_key, max_retries=0)
        return self._client

    def build_request(self, system_prompt: str, turns: List[Turn]) -> Dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": 600,
            "system": system_prompt,
            "messages": list(turns),
        }

    async def send(self, request: Dict[str, Any]) -> Any:
        return await self.client.messages.create(**request)

    def extract_text(self, raw: Any) -> str:
        return "".join(
            block.text for block in raw.content if getattr(block, "type", "text") == "text"
        )

    def extract_usage(self, raw: Any) -> Optional[TokenUsage]:
        usage = getattr(raw, "usage", None)
        if usage is None:
            return None
        return TokenUsage(
            input=usage.input_tokens,
            output=usage.output_tokens,
            total=usage.input_tokens + usage.output_tokens,
        )
