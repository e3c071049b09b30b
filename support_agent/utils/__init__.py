from typing import Optional


def preview(text: Optional[str], limit: int = 100) -> str:
    """Shorten user supplied text for log lines."""
    if not text:
        return ""
    return text if len(text) <= limit else f"{text[:limit]}..."
