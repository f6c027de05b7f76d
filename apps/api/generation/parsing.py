"""Best-effort parsing of JSON returned by the model."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Optional

_LEADING_FENCE_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE_RE = re.compile(r"\s*```$")


@dataclass(frozen=True)
class JSONParseResult:
    ok: bool
    value: Any = None
    error: Optional[str] = None


def strip_code_fence(text: str) -> str:
    """Remove a leading ```json / ``` fence and a trailing ``` fence."""
    cleaned = (text or "").strip()
    cleaned = _LEADING_FENCE_RE.sub("", cleaned)
    cleaned = _TRAILING_FENCE_RE.sub("", cleaned)
    return cleaned.strip()


def parse_json_response(text: Optional[str]) -> JSONParseResult:
    """Parse a model response into JSON without raising."""
    cleaned = strip_code_fence(text or "")
    if not cleaned:
        return JSONParseResult(ok=False, error="empty response")
    try:
        return JSONParseResult(ok=True, value=json.loads(cleaned))
    except json.JSONDecodeError as exc:
        return JSONParseResult(ok=False, error=f"invalid JSON: {exc.msg} at position {exc.pos}")
