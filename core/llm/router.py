from typing import List, Optional, Sequence

from config.models import ModelConfig, RetryConfig
from core.contracts.provider import LLMProvider
from core.llm.retry import call_with_retry
from core.registry import provider_registry
from utils.errors import AllProvidersFailedError, ProviderError
from utils.logger import logger


def get_provider(config: ModelConfig) -> LLMProvider:
    """
    Factory function to get an LLM provider instance based on the config.

    Args:
        config: The model configuration.

    Returns:
        An instance of a class that implements the LLMProvider protocol.

    Raises:
        ProviderError: If the provider is not found or fails to be created.
    """
    try:
        # The provider's __init__ is expected to take the config object.
        provider_instance = provider_registry.create(config.provider, config=config)
        return provider_instance
    except KeyError:
        available = list(provider_registry.keys())
        raise ProviderError(
            f"Unknown provider '{config.provider}'. "
            f"Available providers: {available}",
            provider=config.provider,
        )
    except Exception as e:
        # Catch other potential instantiation errors from the provider's __init__
        raise ProviderError(f"Failed to create provider '{config.provider}': {e}", provider=config.provider) from e


class ProviderChain:
    """
    Interchangeable providers tried in order.

    Each provider call runs under the retry policy. When a provider is
    unavailable or its retries are exhausted, the next one is tried.
    """

    def __init__(self, providers: Sequence[LLMProvider], retry: Optional[RetryConfig] = None):
        self.providers = list(providers)
        self.retry = retry or RetryConfig()

    @classmethod
    def from_configs(cls, configs: Sequence[ModelConfig], retry: Optional[RetryConfig] = None) -> "ProviderChain":
        return cls([get_provider(c) for c in configs], retry=retry)

    def is_available(self) -> bool:
        return any(p.is_available() for p in self.providers)

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
        Generates a response with the first provider that succeeds.

        Raises:
            AllProvidersFailedError: If no provider produced a response.
        """
        attempted: List[str] = []
        for provider in self.providers:
            if not provider.is_available():
                logger.debug(f"Skipping unavailable provider '{provider.name}'")
                continue
            attempted.append(provider.name)
            try:
                logger.info(f"Generating with provider '{provider.name}'")
                return await call_with_retry(
                    self.retry,
                    provider.generate,
                    system_prompt,
                    user_prompt,
                    model=model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            except ProviderError as e:
                logger.warning(f"Provider '{provider.name}' failed, falling back to the next one: {e}")

        raise AllProvidersFailedError(attempted)
