"""
Retrieval backend client for Pinecone indexes with integrated embeddings,
talking to the records search REST API over aiohttp.
"""

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from support_agent.errors import BackendError, ConfigError
from support_agent.vars import (
    PINECONE_API_VERSION,
    PINECONE_CONTROL_URL,
    PINECONE_INDEX,
    PINECONE_INDEX_HOST,
    RERANK_FIELD,
    RERANK_MODEL,
    RETRIEVAL_TIMEOUT_SECONDS,
)

logger = logging.getLogger("uvicorn.error")


@dataclass
class RerankSpec:
    model: str = RERANK_MODEL
    top_n: int = 5
    rank_field: str = RERANK_FIELD

    def to_payload(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "top_n": self.top_n,
            "rank_fields": [self.rank_field],
        }


def remediation_for(message: str, index: str) -> str:
    lowered = message.lower()
    if "404" in lowered or "not found" in lowered:
        return f'Index "{index}" may not exist. Verify the index name in PINECONE_INDEX.'
    if "401" in lowered or "403" in lowered or "unauthorized" in lowered or "forbidden" in lowered:
        return "Check that PINECONE_API_KEY is correct and has proper permissions."
    return "Check network connectivity and Pinecone service status."


class PineconeSearchClient:
    """Client for the Pinecone records API of a single index."""

    def __init__(
        self,
        index_name: Optional[str] = None,
        index_host: Optional[str] = None,
        timeout_seconds: float = RETRIEVAL_TIMEOUT_SECONDS,
    ):
        self.api_key = os.environ.get("PINECONE_API_KEY", "")
        self.index_name = index_name or PINECONE_INDEX
        self._host = index_host or PINECONE_INDEX_HOST
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    def ensure_configured(self) -> None:
        if not self.api_key:
            raise ConfigError(
                "PINECONE_API_KEY",
                "PINECONE_API_KEY environment variable is required. "
                "Get your API key from https://app.pinecone.io/",
            )

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Api-Key": self.api_key,
            "Content-Type": "application/json",
            "X-Pinecone-API-Version": PINECONE_API_VERSION,
        }

    def _error(self, message: str, namespace: Optional[str] = None) -> BackendError:
        return BackendError(
            message,
            backend="pinecone",
            index=self.index_name,
            namespace=namespace,
            remediation=remediation_for(message, self.index_name),
        )

    async def _resolve_host(self, session: aiohttp.ClientSession) -> str:
        if not self._host:
            url = f"{PINECONE_CONTROL_URL.rstrip('/')}/indexes/{self.index_name}"
            async with session.get(url, headers=self._get_headers()) as response:
                if not response.ok:
                    error_text = await response.text()
                    raise self._error(
                        f"Describe index failed: {response.status} {error_text}"
                    )
                description = await response.json()
            host = description.get("host") if isinstance(description, dict) else None
            if not host:
                raise self._error(f"Index '{self.index_name}' has no host in its description")
            self._host = host
            logger.info(f"[PineconeSearchClient] Resolved index '{self.index_name}' to {host}")
        host = self._host.rstrip("/")
        return host if host.startswith("http") else f"https://{host}"

    def _build_payload(
        self, query: str, top_k: int, rerank: Optional[RerankSpec]
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "query": {"inputs": {"text": query}, "top_k": top_k},
        }
        if rerank is not None:
            payload["rerank"] = rerank.to_payload()
        return payload

    async def search(
        self,
        namespace: str,
        query: str,
        top_k: int,
        rerank: Optional[RerankSpec] = None,
    ) -> List[Dict[str, Any]]:
        """
        Search ``namespace`` and return raw hits (``_id``, ``_score``,
        ``fields``). Raises ``ConfigError`` without an API key and
        ``BackendError`` for any failed or malformed backend response.
        """
        self.ensure_configured()
        payload = self._build_payload(query, top_k, rerank)

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                host = await self._resolve_host(session)
                url = f"{host}/records/namespaces/{namespace}/search"
                async with session.post(
                    url, headers=self._get_headers(), data=json.dumps(payload)
                ) as response:
                    if not response.ok:
                        error_text = await response.text()
                        raise self._error(
                            f"Search failed: {response.status} {error_text}", namespace
                        )
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise self._error(f"Search request failed: network error {e!r}", namespace) from e

        result = data.get("result") if isinstance(data, dict) else None
        hits = result.get("hits") if isinstance(result, dict) else None
        if not isinstance(hits, list):
            raise self._error("Unexpected search response format: missing result.hits", namespace)
        return hits
