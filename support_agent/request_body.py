"""
Request body extraction.

Handlers receive bodies in several shapes depending on how they are invoked:
a Starlette ``Request``, a context object wrapping the request as ``.req``,
an already parsed mapping (optionally wrapped as ``{"body": {...}}``), a
callable producing the body, or raw bytes. ``extract_body`` reduces all of
them to a parsed JSON object so route logic only ever sees a dict.
"""

import inspect
import json
from typing import Any, Dict, Mapping

from support_agent.errors import ValidationError

_MAX_DEPTH = 5


async def extract_body(raw: Any) -> Dict[str, Any]:
    """Return the JSON object carried by ``raw``; raise ``ValidationError`` otherwise."""
    body = await _extract(raw, 0)
    if not isinstance(body, Mapping):
        raise ValidationError(
            f"Request body must be a JSON object, got {type(body).__name__}", path="body"
        )
    return dict(body)


async def _extract(raw: Any, depth: int) -> Any:
    if depth > _MAX_DEPTH:
        raise ValidationError("Unable to extract request body: wrapped too deeply", path="body")

    if raw is None:
        raise ValidationError("Request body is empty", path="body")

    if isinstance(raw, (bytes, bytearray, str)):
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
        if not text.strip():
            raise ValidationError("Request body is empty", path="body")
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Request body is not valid JSON: {e.msg}", path="body") from e
        return await _extract(parsed, depth + 1) if isinstance(parsed, Mapping) else parsed

    if isinstance(raw, Mapping):
        # {"body": {...}} wrappers carry nothing but the body
        if set(raw.keys()) == {"body"}:
            return await _extract(raw["body"], depth + 1)
        return raw

    if isinstance(raw, list):
        return raw

    # Framework context objects expose the actual request as `.req`
    inner = getattr(raw, "req", None)
    if inner is not None and inner is not raw:
        return await _extract(inner, depth + 1)

    json_method = getattr(raw, "json", None)
    if callable(json_method):
        return await _extract(await _call(json_method), depth + 1)

    if callable(raw):
        return await _extract(await _call(raw), depth + 1)

    raise ValidationError(
        f"Unable to extract request body from {type(raw).__name__}", path="body"
    )


async def _call(fn) -> Any:
    try:
        result = fn()
        if inspect.isawaitable(result):
            result = await result
    except ValidationError:
        raise
    except (ValueError, UnicodeDecodeError) as e:
        # json.JSONDecodeError is a ValueError
        raise ValidationError(f"Request body is not valid JSON: {e}", path="body") from e
    return result
