from typing import Optional

from support_agent.retrieval.pipeline import RetrievalPipeline, RetrievalResult

__all__ = ["RetrievalPipeline", "RetrievalResult", "get_retrieval_pipeline"]

_default_pipeline: Optional[RetrievalPipeline] = None


def get_retrieval_pipeline() -> RetrievalPipeline:
    """Get or create the process-wide retrieval pipeline."""
    global _default_pipeline
    if _default_pipeline is None:
        _default_pipeline = RetrievalPipeline()
    return _default_pipeline
