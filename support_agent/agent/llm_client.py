"""
LLM client module for handling direct communication with an OpenAI-compatible
chat completions API.
"""

import json
import logging
import os
from typing import AsyncGenerator, Optional

import aiohttp
from opentelemetry import trace

from support_agent.agent.models import ChatCompletionRequest, ChatCompletionResponse
from support_agent.errors import BackendError, ConfigError
from support_agent.vars import LLM_MODEL_NAME

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

_REMEDIATION = "Check LLM_URL, LLM_TOKEN and the availability of the LLM service."


class LLMClient:
    """Client for communicating with the LLM API."""

    def __init__(self, model_name: Optional[str] = None):
        self.logger = logger
        self.llm_url = os.environ.get("LLM_URL", "")
        self.llm_token = os.environ.get("LLM_TOKEN", "")
        self.model_name = model_name or LLM_MODEL_NAME

        # Ensure LLM_URL doesn't end with slash for consistent URL building
        if self.llm_url.endswith("/"):
            self.llm_url = self.llm_url[:-1]

        self.logger.info(f"[LLMClient] Initialized with URL: {self.llm_url or '<unset>'}")

    def ensure_configured(self) -> None:
        if not self.llm_url:
            raise ConfigError(
                "LLM_URL",
                "LLM_URL environment variable is required. "
                "Set it to the base URL of an OpenAI-compatible chat completions API.",
            )

    def _get_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "parent-support-agent/1.0",
        }
        if self.llm_token:
            headers["Authorization"] = f"Bearer {self.llm_token}"
        return headers

    def _generate_llm_payload(self, request: ChatCompletionRequest) -> str:
        payload = request.model_dump(exclude_none=True, mode="json")

        # tool_choice is only valid when tools are specified
        if not payload.get("tools"):
            payload.pop("tool_choice", None)

        if not payload.get("model"):
            payload["model"] = self.model_name

        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))

    def _backend_error(self, message: str) -> BackendError:
        return BackendError(message, backend="llm", remediation=_REMEDIATION)

    async def stream_completion(
        self, request: ChatCompletionRequest
    ) -> AsyncGenerator[str, None]:
        """
        Stream completion chunks from the LLM, one SSE line per chunk.

        Raises ``BackendError`` when the API answers with an error status or
        cannot be reached.
        """
        self.ensure_configured()
        request.stream = True
        serialized_payload = self._generate_llm_payload(request)
        self.logger.debug(
            f"[LLMClient] Streaming request (messages={len(request.messages)}, tools={len(request.tools or [])})"
        )

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.llm_url}/chat/completions",
                    headers=self._get_headers(),
                    data=serialized_payload,
                ) as response:
                    if not response.ok:
                        error_text = await response.text()
                        error_msg = f"LLM API error: {response.status} {error_text}"
                        self.logger.error(f"[LLMClient] {error_msg}")
                        raise self._backend_error(error_msg)

                    chunk_count = 0
                    async for chunk in response.content:
                        chunk_str = chunk.decode("utf-8")
                        if not chunk_str.strip():
                            continue
                        chunk_count += 1
                        # Ensure proper SSE format with \n\n terminator
                        if not chunk_str.endswith("\n\n"):
                            chunk_str = chunk_str.rstrip("\n") + "\n\n"
                        yield chunk_str

                    self.logger.info(
                        f"[LLMClient] Streaming completed, total chunks={chunk_count}"
                    )
        except aiohttp.ClientError as e:
            error_msg = f"Error streaming from LLM: {e}"
            self.logger.error(f"[LLMClient] {error_msg}")
            raise self._backend_error(error_msg) from e

    async def non_stream_completion(
        self, request: ChatCompletionRequest
    ) -> ChatCompletionResponse:
        """Get a non-streaming completion from the LLM."""
        self.ensure_configured()
        with tracer.start_as_current_span("non_stream_llm_completion") as span:
            span.set_attribute("llm.url", self.llm_url)
            span.set_attribute("llm.model", request.model or self.model_name)
            request.stream = False
            serialized_payload = self._generate_llm_payload(request)

            try:
                async with aiohttp.ClientSession() as session:
                    async with session.post(
                        f"{self.llm_url}/chat/completions",
                        headers=self._get_headers(),
                        data=serialized_payload,
                    ) as response:
                        if not response.ok:
                            error_text = await response.text()
                            error_msg = f"LLM API error: {response.status} {error_text}"
                            self.logger.error(f"[LLMClient] {error_msg}")
                            span.set_attribute("error", True)
                            span.set_attribute("error.message", error_msg)
                            raise self._backend_error(error_msg)

                        response_data = await response.json()
                        return ChatCompletionResponse(**response_data)
            except aiohttp.ClientError as e:
                error_msg = f"Error calling LLM: {e}"
                self.logger.error(f"[LLMClient] {error_msg}", exc_info=True)
                span.set_attribute("error", True)
                span.set_attribute("error.message", str(e))
                raise self._backend_error(error_msg) from e
