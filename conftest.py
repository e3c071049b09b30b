# Shared fixtures for the support agent tests.
# Backends (LLM, Pinecone) are replaced by fakes; the run store lives in tmp_path.
import os
import sys

import pytest

SERVICE_ROOT = os.path.dirname(__file__)
if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

from support_agent.agent.models import (  # noqa: E402
    ChatCompletionResponse,
    Choice,
    Message,
    MessageRole,
)
from support_agent.workflows.engine import WorkflowEngine  # noqa: E402
from support_agent.workflows.multiple_choice import build_multiple_choice_workflow  # noqa: E402
from support_agent.workflows.repository import WorkflowRepository  # noqa: E402
from support_agent.workflows.request_email import build_request_email_workflow  # noqa: E402
from support_agent.workflows.state import WorkflowRunStore  # noqa: E402
from support_agent.workflows.suggestions import build_suggestion_workflow  # noqa: E402


class FakeLLMClient:
    """Replays scripted completions: a list of chunk lists for streaming, a text for non-streaming."""

    def __init__(self, streams=None, text="", error=None):
        self.streams = list(streams or [])
        self.text = text
        self.error = error
        self.requests = []

    def ensure_configured(self):
        return None

    async def stream_completion(self, request):
        self.requests.append(request.model_copy(deep=True))
        if self.error is not None:
            raise self.error
        chunks = self.streams.pop(0) if self.streams else ["data: [DONE]\n\n"]
        for chunk in chunks:
            yield chunk

    async def non_stream_completion(self, request):
        self.requests.append(request.model_copy(deep=True))
        if self.error is not None:
            raise self.error
        return ChatCompletionResponse(
            id="chatcmpl-test",
            created=0,
            model="test-model",
            choices=[
                Choice(index=0, message=Message(role=MessageRole.ASSISTANT, content=self.text))
            ],
        )


class FakeSearchClient:
    """Stands in for PineconeSearchClient; records calls and returns canned hits."""

    index_name = "test-index"

    def __init__(self, hits=None, error=None):
        self.hits = hits or []
        self.error = error
        self.calls = []

    async def search(self, namespace, query, top_k, rerank=None):
        self.calls.append(
            {"namespace": namespace, "query": query, "top_k": top_k, "rerank": rerank}
        )
        if self.error is not None:
            raise self.error
        return list(self.hits)


@pytest.fixture
def fake_llm():
    return FakeLLMClient()


@pytest.fixture
def run_store(tmp_path):
    return WorkflowRunStore(db_path=tmp_path / "runs.db")


@pytest.fixture
def engine(run_store, fake_llm):
    repository = WorkflowRepository(
        [
            build_request_email_workflow(),
            build_multiple_choice_workflow(),
            build_suggestion_workflow(fake_llm),
        ]
    )
    return WorkflowEngine(repository, run_store)


@pytest.fixture
def llm_factory():
    return FakeLLMClient


@pytest.fixture
def search_client_factory():
    return FakeSearchClient
