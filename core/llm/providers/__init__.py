# Importing the modules registers each provider with provider_registry.
from core.llm.providers import claude, dummy_provider, openai  # noqa: F401
