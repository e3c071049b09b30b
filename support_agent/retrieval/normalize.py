"""
Normalization of raw retrieval hits.

Backends return document data under either a ``fields`` or a ``metadata``
container and name the text differently per index. Every consumer goes
through ``extract_field`` with an explicit precedence list so the same hit
always normalizes to the same record.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

CONTENT_PRECEDENCE: Sequence[Tuple[str, str]] = (
    ("fields", "text"),
    ("fields", "content"),
    ("fields", "excerpt"),
    ("metadata", "excerpt"),
    ("metadata", "content"),
    ("metadata", "text"),
)

# title reads metadata before fields, the reverse of content
TITLE_PRECEDENCE: Sequence[Tuple[str, str]] = (
    ("metadata", "title"),
    ("fields", "title"),
)

UNTITLED = "Untitled"
CONTEXT_SEPARATOR = "\n\n---\n\n"


@dataclass
class RetrievalHit:
    id: str
    score: float
    content: str = ""
    title: str = UNTITLED
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "score": self.score,
            "content": self.content,
            "metadata": self.metadata,
        }


def _container(hit: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = hit.get(name)
    return value if isinstance(value, Mapping) else {}


def extract_field(
    hit: Mapping[str, Any],
    precedence: Iterable[Tuple[str, str]],
    default: str = "",
) -> str:
    """Return the first non-empty ``container.key`` value of ``hit`` as a string."""
    for container_name, key in precedence:
        value = _container(hit, container_name).get(key)
        if value is None:
            continue
        text = value if isinstance(value, str) else str(value)
        if text:
            return text
    return default


def normalize_hit(hit: Mapping[str, Any]) -> RetrievalHit:
    hit_id = hit.get("_id", hit.get("id"))
    score = hit.get("_score", hit.get("score"))
    try:
        score = float(score) if score is not None else 0.0
    except (TypeError, ValueError):
        score = 0.0
    return RetrievalHit(
        id="" if hit_id is None else str(hit_id),
        score=score,
        content=extract_field(hit, CONTENT_PRECEDENCE),
        title=extract_field(hit, TITLE_PRECEDENCE, default=UNTITLED),
        metadata={**_container(hit, "fields"), **_container(hit, "metadata")},
    )


def normalize_hits(hits: Optional[Iterable[Mapping[str, Any]]]) -> List[RetrievalHit]:
    return [normalize_hit(hit) for hit in hits or [] if isinstance(hit, Mapping)]


def format_context(hits: Iterable[RetrievalHit]) -> str:
    return CONTEXT_SEPARATOR.join(
        f"[Document: {hit.title}, ID: {hit.id}, Score: {hit.score:.3f}]\n{hit.content}"
        for hit in hits
    )


def to_display_hit(hit: RetrievalHit) -> Dict[str, Any]:
    """Shape a hit for the UI: id, title, score, content and optional links."""
    display: Dict[str, Any] = {
        "id": hit.id,
        "title": hit.title,
        "score": hit.score,
        "content": hit.content,
    }
    for source_key, display_key in (
        ("file_path", "filePath"),
        ("filePath", "filePath"),
        ("url", "url"),
        ("source_url", "url"),
        ("description", "description"),
    ):
        value = hit.metadata.get(source_key)
        if value and display_key not in display:
            display[display_key] = value
    display["metadata"] = hit.metadata
    return display
