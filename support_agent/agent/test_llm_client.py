import json
from unittest.mock import patch

import aiohttp
import pytest

from support_agent.agent.llm_client import LLMClient
from support_agent.agent.models import (
    ChatCompletionRequest,
    FunctionDefinition,
    Message,
    MessageRole,
    Tool,
)
from support_agent.errors import BackendError, ConfigError

SESSION = "support_agent.agent.llm_client.aiohttp.ClientSession"


@pytest.fixture
def llm_client():
    """Create LLMClient instance with test configuration."""
    with patch.dict(
        "os.environ",
        {"LLM_URL": "https://api.test-llm.com/v1", "LLM_TOKEN": "test-token-123"},
    ):
        return LLMClient()


@pytest.fixture
def llm_client_no_token():
    with patch.dict("os.environ", {"LLM_URL": "https://api.test-llm.com/v1", "LLM_TOKEN": ""}):
        return LLMClient()


class MockContent:
    def __init__(self, chunks):
        self.chunks = chunks

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield chunk


class MockResponse:
    def __init__(self, status=200, payload=None, chunks=None, text=""):
        self.ok = status < 400
        self.status = status
        self.payload = payload
        self.content = MockContent(chunks or [])
        self._text = text

    async def json(self):
        return self.payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


def mock_session(response=None, error=None):
    posted = []

    class MockSession:
        def __init__(self, **kwargs):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc_val, exc_tb):
            pass

        def post(self, url, headers, data=None):
            posted.append({"url": url, "headers": headers, "data": json.loads(data)})
            if error is not None:
                raise error
            return response

    return MockSession, posted


def hello_request(**kwargs):
    return ChatCompletionRequest(
        messages=[Message(role=MessageRole.USER, content="Hello")], model="test-model", **kwargs
    )


class TestLLMClient:
    """Test cases for LLMClient."""

    def test_init_strips_trailing_slash(self):
        with patch.dict("os.environ", {"LLM_URL": "https://api.test.com/", "LLM_TOKEN": ""}):
            client = LLMClient()
        assert client.llm_url == "https://api.test.com"

    def test_get_headers_with_token(self, llm_client):
        headers = llm_client._get_headers()

        assert headers["Content-Type"] == "application/json"
        assert headers["Authorization"] == "Bearer test-token-123"
        assert "User-Agent" in headers

    def test_get_headers_without_token(self, llm_client_no_token):
        assert "Authorization" not in llm_client_no_token._get_headers()

    def test_payload_drops_tool_choice_without_tools(self, llm_client):
        payload = json.loads(llm_client._generate_llm_payload(hello_request()))

        assert "tool_choice" not in payload
        assert payload["messages"] == [{"role": "user", "content": "Hello"}]

    def test_payload_carries_only_request_fields(self, llm_client):
        payload = json.loads(llm_client._generate_llm_payload(hello_request()))

        assert set(payload) == {"messages", "model", "stream"}

    def test_payload_keeps_tool_choice_with_tools(self, llm_client):
        tools = [Tool(function=FunctionDefinition(name="escalate", parameters={"type": "object"}))]

        payload = json.loads(llm_client._generate_llm_payload(hello_request(tools=tools)))

        assert payload["tool_choice"] == "auto"
        assert payload["tools"][0]["function"]["name"] == "escalate"

    def test_missing_url_raises_config_error(self):
        with patch.dict("os.environ", {"LLM_URL": "", "LLM_TOKEN": ""}):
            client = LLMClient()

        with pytest.raises(ConfigError) as exc_info:
            client.ensure_configured()
        assert exc_info.value.setting == "LLM_URL"

    @pytest.mark.asyncio
    async def test_non_stream_completion_success(self, llm_client):
        response = MockResponse(
            payload={
                "id": "chatcmpl-test123",
                "object": "chat.completion",
                "created": 1234567890,
                "model": "test-model",
                "choices": [
                    {
                        "index": 0,
                        "message": {"role": "assistant", "content": "Hello! How can I help you today?"},
                        "finish_reason": "stop",
                    }
                ],
                "usage": {"prompt_tokens": 10, "completion_tokens": 8, "total_tokens": 18},
            }
        )
        session_cls, posted = mock_session(response)

        with patch(SESSION, session_cls):
            result = await llm_client.non_stream_completion(hello_request(stream=True))

        assert result.text == "Hello! How can I help you today?"
        assert posted[0]["url"] == "https://api.test-llm.com/v1/chat/completions"
        assert posted[0]["data"]["stream"] is False

    @pytest.mark.asyncio
    async def test_non_stream_completion_error_status(self, llm_client):
        session_cls, _ = mock_session(MockResponse(status=500, text="Internal Server Error"))

        with patch(SESSION, session_cls):
            with pytest.raises(BackendError) as exc_info:
                await llm_client.non_stream_completion(hello_request())

        assert exc_info.value.backend == "llm"
        assert "500" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_stream_completion_normalizes_frames(self, llm_client):
        chunks = [
            b'data: {"choices":[{"delta":{"content":"Hel"}}]}\n',
            b"\n",
            b'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n',
            b"data: [DONE]\n",
        ]
        session_cls, posted = mock_session(MockResponse(chunks=chunks))

        with patch(SESSION, session_cls):
            frames = [frame async for frame in llm_client.stream_completion(hello_request())]

        assert frames == [
            'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n',
            'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n',
            "data: [DONE]\n\n",
        ]
        assert posted[0]["data"]["stream"] is True

    @pytest.mark.asyncio
    async def test_stream_completion_connection_error(self, llm_client):
        session_cls, _ = mock_session(error=aiohttp.ClientConnectionError("refused"))

        with patch(SESSION, session_cls):
            with pytest.raises(BackendError):
                async for _ in llm_client.stream_completion(hello_request()):
                    pass
