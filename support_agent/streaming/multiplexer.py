"""
Retrieval augmentation around the streamed chat response.

``prepare`` runs before the stream starts: it searches the knowledge base
for the latest user message and records the outcome in the request's
``data`` field. ``relay`` then emits one ``data-retrieval`` event carrying
the hits, followed by every upstream chunk untouched and in order. Without
hits, or when the search failed, the upstream stream passes through as is.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional

from support_agent.retrieval.normalize import to_display_hit
from support_agent.retrieval.pipeline import RetrievalPipeline, RetrievalResult
from support_agent.streaming.events import SSEEvent
from support_agent.utils.exception_logging import log_exception_with_details
from support_agent.vars import AUTO_SEARCH_TOP_K, DEFAULT_NAMESPACE

logger = logging.getLogger("uvicorn.error")


def extract_message_text(message: Mapping[str, Any]) -> str:
    """Text of a chat message: ``text``, else its text parts, else a string ``content``."""
    text = message.get("text")
    if isinstance(text, str) and text:
        return text

    parts = message.get("parts")
    if isinstance(parts, list):
        texts = [
            part["text"]
            for part in parts
            if isinstance(part, Mapping)
            and part.get("type") == "text"
            and isinstance(part.get("text"), str)
            and part.get("text")
        ]
        if texts:
            return " ".join(texts)

    content = message.get("content")
    if isinstance(content, str):
        return content
    return ""


def latest_user_text(messages: List[Mapping[str, Any]]) -> str:
    for message in reversed(messages or []):
        if isinstance(message, Mapping) and message.get("role") == "user":
            return extract_message_text(message)
    return ""


class AugmentedChatStream:
    def __init__(self, pipeline: RetrievalPipeline, top_k: int = AUTO_SEARCH_TOP_K):
        self.pipeline = pipeline
        self.top_k = top_k

    async def prepare(self, body: Dict[str, Any]) -> Optional[RetrievalResult]:
        """
        Search for the latest user message and attach the outcome to
        ``body["data"]``. Never raises; a failed search is recorded as
        ``autoSearchError`` and returns None.
        """
        query = latest_user_text(body.get("messages") or [])
        if not query.strip():
            return None

        data = body.get("data")
        if not isinstance(data, dict):
            data = {}
            body["data"] = data
        namespace = data.get("namespace") or DEFAULT_NAMESPACE

        logger.info("[ChatRoute] Performing automatic vector search for user message")
        try:
            result = await self.pipeline.search(
                query, namespace, self.top_k, component="AutoVectorSearch"
            )
        except Exception as e:
            log_exception_with_details(
                logger, "[ChatRoute] Auto search failed, continuing without search context:", e
            )
            data["autoSearchError"] = str(e) or type(e).__name__
            return None

        data["autoSearchContext"] = result.context
        data["autoSearchResults"] = result.summary()
        data["autoSearchPerformed"] = True
        logger.info(f"[ChatRoute] Auto search completed: {result.result_count} results found")
        return result

    async def relay(
        self,
        upstream: AsyncIterator[str],
        retrieval: Optional[RetrievalResult],
    ) -> AsyncIterator[str]:
        if retrieval is not None and retrieval.has_results:
            yield SSEEvent.retrieval_event(
                {
                    "results": [to_display_hit(hit) for hit in retrieval.results],
                    "resultCount": retrieval.result_count,
                }
            ).to_sse_string()
        async for chunk in upstream:
            yield chunk
