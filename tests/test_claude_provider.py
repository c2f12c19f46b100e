import pytest
import httpx

from config.models import ModelConfig
from core.llm.router import get_provider
from core.llm.providers.claude import ClaudeProvider
from utils.errors import ProviderError


@pytest.fixture
def claude_config():
    """Fixture for Claude provider configuration."""
    return ModelConfig(
        provider="claude",
        name="claude-3-5-sonnet-latest",
        api_key="test_claude_api_key"
    )


def messages_response(status: int, payload: dict) -> httpx.Response:
    return httpx.Response(status, json=payload, request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))


def test_get_provider_claude(claude_config):
    """Tests that the router returns a ClaudeProvider instance."""
    provider = get_provider(claude_config)
    assert isinstance(provider, ClaudeProvider)
    assert provider.name == "claude"


def test_claude_provider_sends_api_key_header(claude_config):
    provider = ClaudeProvider(claude_config)
    assert provider._client.headers["x-api-key"] == "test_claude_api_key"
    assert provider._client.headers["anthropic-version"] == "2023-06-01"


@pytest.mark.asyncio
async def test_claude_provider_without_api_key(mocker):
    """Tests that the provider refuses to generate without an API key."""
    mocker.patch.dict("os.environ", {}, clear=True)
    provider = ClaudeProvider(ModelConfig(provider="claude", api_key=None))

    assert not provider.is_available()
    with pytest.raises(ProviderError, match="Anthropic API key not found"):
        await provider.generate("system", "user")


@pytest.mark.asyncio
async def test_claude_provider_reads_key_from_environment(mocker):
    mocker.patch.dict("os.environ", {"ANTHROPIC_API_KEY": "from-env"})
    assert ClaudeProvider(ModelConfig(provider="claude")).is_available()


@pytest.mark.asyncio
async def test_claude_provider_generate(claude_config, mocker):
    """Tests the generate method for Claude."""
    mock_post = mocker.patch(
        "httpx.AsyncClient.post",
        return_value=messages_response(
            200,
            {
                "content": [
                    {"type": "text", "text": "Hello"},
                    {"type": "tool_use", "id": "t1", "name": "noop", "input": {}},
                    {"type": "text", "text": " from Claude!"},
                ]
            },
        ),
    )

    provider = ClaudeProvider(claude_config)
    result = await provider.generate("You fix lint issues", "Say hi", max_tokens=512)

    assert result == "Hello from Claude!"
    mock_post.assert_called_once()
    payload = mock_post.call_args.kwargs["json"]
    assert payload["model"] == "claude-3-5-sonnet-latest"
    assert payload["system"] == "You fix lint issues"
    assert payload["messages"] == [{"role": "user", "content": "Say hi"}]
    assert payload["max_tokens"] == 512
    assert payload["temperature"] == 0.2


@pytest.mark.asyncio
async def test_claude_overloaded_is_retryable(claude_config, mocker):
    mocker.patch(
        "httpx.AsyncClient.post",
        return_value=messages_response(529, {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}),
    )

    with pytest.raises(ProviderError, match="Anthropic API error \\(529\\): Overloaded") as excinfo:
        await ClaudeProvider(claude_config).generate("system", "user")

    assert excinfo.value.retryable
    assert excinfo.value.status_code == 529


@pytest.mark.asyncio
async def test_claude_bad_request_is_not_retryable(claude_config, mocker):
    mocker.patch(
        "httpx.AsyncClient.post",
        return_value=messages_response(400, {"error": {"message": "max_tokens: field required"}}),
    )

    with pytest.raises(ProviderError) as excinfo:
        await ClaudeProvider(claude_config).generate("system", "user")

    assert not excinfo.value.retryable
