import os
import httpx
import json
from typing import Optional

from config.models import ModelConfig
from core.llm.retry import is_connection_reset, is_retryable_status
from core.registry import provider_registry
from utils.errors import ProviderError


@provider_registry.register("claude")
class ClaudeProvider:
    """
    A provider for the Anthropic messages API.
    """

    def __init__(self, config: ModelConfig):
        self.config = config
        self.name = "claude"
        self._api_key = config.api_key or os.getenv("ANTHROPIC_API_KEY")
        self._client = httpx.AsyncClient(
            base_url=config.base_url or "https://api.anthropic.com/v1",
            headers={
                "x-api-key": self._api_key or "",
                "anthropic-version": "2023-06-01",
                "Content-Type": "application/json",
            },
            timeout=self.config.timeout_sec,
        )

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def _request(self, payload: dict) -> httpx.Response:
        """
        Sends an HTTP request to the messages endpoint.
        """
        try:
            response = await self._client.post("/messages", json=payload)
            response.raise_for_status()
            return response
        except httpx.TimeoutException as e:
            raise ProviderError(f"Request to Anthropic timed out: {e}", provider=self.name) from e
        except httpx.HTTPStatusError as e:
            try:
                error_details = e.response.json()
                error_message = error_details.get("error", {}).get("message", e.response.text)
            except json.JSONDecodeError:
                error_message = e.response.text
            status = e.response.status_code
            raise ProviderError(
                f"Anthropic API error ({status}): {error_message}",
                provider=self.name,
                status_code=status,
                retryable=is_retryable_status(status),
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(
                f"An unexpected network error occurred: {e}",
                provider=self.name,
                retryable=is_connection_reset(e),
            ) from e

    def _build_payload(
        self,
        system_prompt: str,
        user_prompt: str,
        model: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> dict:
        payload = {
            "model": model or self.config.name,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
            "max_tokens": max_tokens or self.config.max_tokens,  # required by the API
            "temperature": self.config.temperature if temperature is None else temperature,
        }
        payload.update(self.config.parameters)
        return payload

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        if not self.is_available():
            raise ProviderError(
                "Anthropic API key not found. Please set it in the config or as an environment variable ANTHROPIC_API_KEY.",
                provider=self.name,
            )
        payload = self._build_payload(system_prompt, user_prompt, model, temperature, max_tokens)
        response = await self._request(payload)
        data = response.json()
        return "".join(block.get("text", "") for block in data.get("content", []) if block.get("type", "text") == "text")
