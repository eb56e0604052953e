# User value: This file wraps the language-model call so the rest of the service sees only text in and text plus token counts out.
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from anthropic import AsyncAnthropic

from config import ANTHROPIC_API_KEY, DEFAULT_MODEL

logger = logging.getLogger("api.model_client")


@dataclass(frozen=True)
class ModelResponse:
    text: str
    input_tokens: int
    output_tokens: int
    model: str


class ModelClient(Protocol):
    model: str

    async def invoke(self, system_prompt: str, user_content: str, max_output_tokens: int) -> ModelResponse:
        ...


class AnthropicModelClient:
    """Messages API adapter. The SDK client is created lazily so imports stay cheap."""

    def __init__(self, *, model: str = DEFAULT_MODEL, api_key: Optional[str] = None, client=None):
        self.model = model
        self._api_key = api_key if api_key is not None else ANTHROPIC_API_KEY
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = AsyncAnthropic(api_key=self._api_key or None)
        return self._client

    async def invoke(self, system_prompt: str, user_content: str, max_output_tokens: int) -> ModelResponse:
        client = self._get_client()
        response = await client.messages.create(
            model=self.model,
            max_tokens=max_output_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": user_content}],
        )
        text = "".join(
            getattr(block, "text", "") for block in (response.content or []) if getattr(block, "type", "text") == "text"
        )
        usage = response.usage
        logger.info(
            "model_invoked model=%s input_tokens=%s output_tokens=%s",
            self.model,
            usage.input_tokens,
            usage.output_tokens,
        )
        return ModelResponse(
            text=text,
            input_tokens=int(usage.input_tokens or 0),
            output_tokens=int(usage.output_tokens or 0),
            model=getattr(response, "model", None) or self.model,
        )
