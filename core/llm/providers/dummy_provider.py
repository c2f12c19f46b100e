from typing import List, Optional, Sequence, Tuple, Union

from config.models import ModelConfig
from core.registry import provider_registry


@provider_registry.register("dummy")
class DummyProvider:
    """
    A scripted provider for tests and dry runs.

    Responses are served in order; the last one repeats once the script runs
    out. A scripted exception instance is raised instead of returned.
    """

    def __init__(
        self,
        config: Optional[ModelConfig] = None,
        responses: Optional[Sequence[Union[str, Exception]]] = None,
        available: bool = True,
    ):
        self.config = config or ModelConfig(provider="dummy", name="dummy")
        self.name = self.config.name or "dummy"
        if responses is None:
            responses = self.config.parameters.get("responses", ["test response"])
        self._responses: List[Union[str, Exception]] = list(responses) or ["test response"]
        self._available = available
        self.calls: List[Tuple[str, str]] = []

    def is_available(self) -> bool:
        return self._available

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        self.calls.append((system_prompt, user_prompt))
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, Exception):
            raise response
        return response
