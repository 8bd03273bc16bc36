from typing import List, Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential

from chatdesk.config import settings
from chatdesk.logging_config import get_logger
from chatdesk.services.llm.base import LLMError, LLMProvider, LLMResponse

logger = get_logger("llm.anthropic")

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(LLMProvider):
    """Anthropic messages API provider."""

    name = "anthropic"

    def __init__(self, api_key: str, default_model: str = "claude-3-5-haiku-latest"):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = "https://api.anthropic.com/v1/messages"

    @retry(
        stop=stop_after_attempt(max(settings.ai_max_retries, 1)),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        reraise=True,
    )
    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout_seconds: Optional[float] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        model = model or self.default_model
        timeout = timeout_seconds if timeout_seconds is not None else settings.ai_timeout_ms / 1000

        # system prompt travels separately
        system = "\n\n".join(m["content"] for m in messages if m.get("role") == "system")
        chat = [m for m in messages if m.get("role") != "system"]
        payload = {
            "model": model,
            "messages": chat,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if system:
            payload["system"] = system

        with httpx.Client(timeout=timeout) as client:
            response = client.post(
                self.base_url,
                headers={
                    "x-api-key": self.api_key,
                    "anthropic-version": ANTHROPIC_VERSION,
                    "Content-Type": "application/json",
                },
                json=payload,
            )

        if response.status_code != 200:
            logger.error(f"Anthropic error: {response.status_code} {response.text[:500]}")
            raise LLMError(f"Anthropic API error: {response.status_code}")

        data = response.json()
        content = "".join(block.get("text", "") for block in data.get("content", []) if block.get("type") == "text")
        if not content:
            raise LLMError("Empty Anthropic response")
        return LLMResponse(content=content.strip(), model=data.get("model", model), usage=data.get("usage"))
