import os
import httpx
import json
from typing import Optional

from config.models import ModelConfig
from core.llm.retry import is_connection_reset, is_retryable_status
from core.registry import provider_registry
from utils.errors import ProviderError


@provider_registry.register("openai")
class OpenAIProvider:
    """
    A provider for OpenAI's chat completions API.
    """

    def __init__(self, config: ModelConfig):
        self.config = config
        self.name = "openai"
        self._api_key = config.api_key or os.getenv("OPENAI_API_KEY")
        self._client = httpx.AsyncClient(
            base_url=config.base_url or "https://api.openai.com/v1",
            headers={
                "Authorization": f"Bearer {self._api_key or ''}",
                "Content-Type": "application/json",
            },
            timeout=self.config.timeout_sec,
        )

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def _request(self, payload: dict) -> httpx.Response:
        try:
            response = await self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
            return response
        except httpx.TimeoutException as e:
            raise ProviderError(f"Request to OpenAI timed out: {e}", provider=self.name) from e
        except httpx.HTTPStatusError as e:
            try:
                error_details = e.response.json()
                error_message = error_details.get("error", {}).get("message", e.response.text)
            except json.JSONDecodeError:
                error_message = e.response.text
            status = e.response.status_code
            raise ProviderError(
                f"OpenAI API error ({status}): {error_message}",
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
        return {
            "model": model or self.config.name,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.config.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.config.max_tokens,
            **self.config.parameters,
        }

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Generates a completion for a system/user prompt pair.
        """
        if not self.is_available():
            raise ProviderError(
                "OpenAI API key not found. Please set it in the config or as an environment variable OPENAI_API_KEY.",
                provider=self.name,
            )
        payload = self._build_payload(system_prompt, user_prompt, model, temperature, max_tokens)
        response = await self._request(payload)
        data = response.json()
        return data["choices"][0]["message"]["content"] or ""
