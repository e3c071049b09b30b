import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "parent-support-agent")

LLM_MODEL_NAME = os.getenv("LLM_MODEL_NAME", "gpt-4.1-mini")
SUGGESTION_MODEL_NAME = os.getenv("SUGGESTION_MODEL_NAME", LLM_MODEL_NAME)
AGENT_MAX_ITERATIONS = int(os.getenv("AGENT_MAX_ITERATIONS", "5"))

PINECONE_INDEX = os.getenv("PINECONE_INDEX", "default-index")
PINECONE_INDEX_HOST = os.getenv("PINECONE_INDEX_HOST", "")
PINECONE_CONTROL_URL = os.getenv("PINECONE_CONTROL_URL", "https://api.pinecone.io")
PINECONE_API_VERSION = os.getenv("PINECONE_API_VERSION", "2025-04")
RERANK_MODEL = os.getenv("RERANK_MODEL", "bge-reranker-v2-m3")
# bge-reranker-v2-m3 only supports a single rank field
RERANK_FIELD = os.getenv("RERANK_FIELD", "text")
RETRIEVAL_TIMEOUT_SECONDS = float(os.getenv("RETRIEVAL_TIMEOUT_SECONDS", "10"))

DEFAULT_NAMESPACE = os.getenv("DEFAULT_NAMESPACE", "public")
AUTO_SEARCH_TOP_K = int(os.getenv("AUTO_SEARCH_TOP_K", "5"))

WORKFLOW_STATE_DB = os.getenv("WORKFLOW_STATE_DB", "/tmp/support_agent_workflows.db")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
