import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from support_agent.errors import BackendError
from support_agent.retrieval.normalize import RetrievalHit, format_context, normalize_hits
from support_agent.retrieval.pinecone_client import PineconeSearchClient, RerankSpec
from support_agent.utils import preview
from support_agent.utils.exception_logging import log_exception_with_details
from support_agent.vars import DEFAULT_NAMESPACE

logger = logging.getLogger("uvicorn.error")


@dataclass
class RetrievalResult:
    context: str = ""
    results: List[RetrievalHit] = field(default_factory=list)

    @property
    def result_count(self) -> int:
        return len(self.results)

    @property
    def has_results(self) -> bool:
        return self.result_count > 0

    @property
    def is_no_match(self) -> bool:
        return not self.has_results

    def summary(self) -> Dict[str, Any]:
        return {
            "resultCount": self.result_count,
            "hasResults": self.has_results,
            "isNoMatch": self.is_no_match,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "context": self.context,
            "results": [hit.to_dict() for hit in self.results],
            **self.summary(),
        }


class RetrievalPipeline:
    """
    Queries the retrieval backend and turns its hits into normalized records
    and a context block for the model.

    Backend failures degrade to an empty result; a missing API key still
    raises ``ConfigError``.
    """

    def __init__(self, client: Optional[PineconeSearchClient] = None):
        self.client = client or PineconeSearchClient()

    async def search(
        self,
        query: str,
        namespace: str = DEFAULT_NAMESPACE,
        top_k: int = 5,
        rerank: bool = True,
        component: str = "VectorSearch",
    ) -> RetrievalResult:
        if not query or not query.strip():
            logger.warning(f"[{component}] Empty query provided")
            return RetrievalResult()

        namespace = namespace or DEFAULT_NAMESPACE
        logger.info(
            f"[{component}] Searching index: {self.client.index_name}, namespace: {namespace}, "
            f'query: "{preview(query)}"'
        )

        # candidates are over-fetched so the reranker can narrow them to top_k
        rerank_spec = RerankSpec(top_n=top_k) if rerank else None
        candidates = top_k * 2 if rerank else top_k
        try:
            raw_hits = await self.client.search(namespace, query, candidates, rerank_spec)
        except BackendError as e:
            log_exception_with_details(logger, f"[{component}]", e)
            return RetrievalResult()

        hits = normalize_hits(raw_hits)[:top_k]
        logger.info(f"[{component}] Found {len(hits)} results for query")
        return RetrievalResult(context=format_context(hits), results=hits)

    async def keyword_search(
        self,
        query: str,
        namespace: str = DEFAULT_NAMESPACE,
        top_k: int = 5,
        required_terms: Optional[Sequence[str]] = None,
    ) -> RetrievalResult:
        """
        Search with the query emphasized by ``required_terms`` and without
        reranking. Terms only extend the query text; they do not filter.
        """
        terms = [term.strip() for term in required_terms or [] if term and term.strip()]
        full_query = " ".join([query.strip(), *terms]) if query and query.strip() else ""
        result = await self.search(
            full_query, namespace, top_k, rerank=False, component="KeywordSearch"
        )
        if full_query and result.is_no_match:
            logger.warning(
                "[KeywordSearch] No results found. Diagnostics: "
                f"index={self.client.index_name}, namespace={namespace or DEFAULT_NAMESPACE}, "
                f'query="{preview(full_query, 50)}", topK={top_k}, requiredTerms={terms}. '
                "Check if the index has data, the namespace is correct and the keywords match indexed content"
            )
        return result
