from typing import Optional, Protocol


class LLMProvider(Protocol):
    """A protocol for LLM providers."""

    name: str

    def is_available(self) -> bool:
        """Returns True when the provider is configured well enough to be called."""
        ...

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
        Generates a response from the LLM.

        Args:
            system_prompt: Instructions for the model.
            user_prompt: The request itself.
            model: Overrides the configured model name.
            temperature: Overrides the configured sampling temperature.
            max_tokens: Overrides the configured completion budget.

        Returns:
            The LLM's response text.
        """
        ...
