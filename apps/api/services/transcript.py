"""Transcript shape normalization and batch stamping."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from generation.models import (
    DEFAULT_SPEAKER_ATTRIBUTE,
    DEFAULT_SPEAKER_NAME,
    GeneratedComment,
    TranscriptTurn,
)

CONTEXT_TURNS = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds")


def parse_timestamp(value: Any) -> Optional[datetime]:
    text = str(value or "").strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _normalize_turn(item: Any, fallback_timestamp: str) -> Optional[Dict[str, str]]:
    if not isinstance(item, dict):
        return None
    content = item.get("content")
    if not isinstance(content, str):
        return None
    timestamp = item.get("timestamp")
    timestamp = str(timestamp) if timestamp is not None else fallback_timestamp

    if isinstance(item.get("id"), str) and isinstance(item.get("speaker_name"), str):
        attribute = item.get("speaker_attribute")
        return {
            "id": item["id"],
            "speaker_name": item["speaker_name"],
            "speaker_attribute": str(attribute) if attribute is not None else DEFAULT_SPEAKER_ATTRIBUTE,
            "content": content,
            "timestamp": timestamp,
        }

    # legacy {speaker, content}
    speaker = item.get("speaker")
    return {
        "id": str(uuid.uuid4()),
        "speaker_name": speaker if isinstance(speaker, str) and speaker else DEFAULT_SPEAKER_NAME,
        "speaker_attribute": DEFAULT_SPEAKER_ATTRIBUTE,
        "content": content,
        "timestamp": timestamp,
    }


def normalize_transcript(raw: Any, now: Optional[datetime] = None) -> List[Dict[str, str]]:
    """Bring stored transcript items to the current turn shape.

    Current-shape items pass through unchanged; legacy ``{speaker, content}``
    items get a fresh id and the default attribute. Items without string
    content are dropped.
    """
    if not isinstance(raw, list):
        return []
    fallback_timestamp = _iso(now or _utcnow())
    turns: List[Dict[str, str]] = []
    for item in raw:
        turn = _normalize_turn(item, fallback_timestamp)
        if turn is not None:
            turns.append(turn)
    return turns


def context_lines(turns: Sequence[Dict[str, str]], limit: int = CONTEXT_TURNS) -> List[str]:
    """Last ``limit`` turns, most recent first, rendered as ``name「content」``."""
    recent = list(turns)[-limit:] if limit > 0 else []
    return [f"{turn['speaker_name']}「{turn['content']}」" for turn in reversed(recent)]


def persona_context_lines(turns: Sequence[Dict[str, str]], limit: int = CONTEXT_TURNS) -> List[str]:
    """Like context_lines, rendered as ``[attribute] name: content``."""
    recent = list(turns)[-limit:] if limit > 0 else []
    return [
        f"[{turn['speaker_attribute']}] {turn['speaker_name']}: {turn['content']}"
        for turn in reversed(recent)
    ]


def chronological_context(turns: Sequence[TranscriptTurn], limit: int = CONTEXT_TURNS) -> List[str]:
    recent = list(turns)[-limit:] if limit > 0 else []
    return [f"{turn.speaker_name}「{turn.content}」" for turn in recent]


def stamp_comments(
    comments: Iterable[GeneratedComment],
    base: Optional[datetime] = None,
) -> List[TranscriptTurn]:
    """Turn raw model comments into turns stamped ``base + i`` seconds."""
    base = base or _utcnow()
    return [
        TranscriptTurn(
            id=str(uuid.uuid4()),
            speaker_name=comment.speaker_name or DEFAULT_SPEAKER_NAME,
            speaker_attribute=comment.speaker_attribute or DEFAULT_SPEAKER_ATTRIBUTE,
            content=comment.content or "",
            timestamp=_iso(base + timedelta(seconds=idx)),
        )
        for idx, comment in enumerate(comments)
    ]


def append_turns(
    existing: Sequence[Dict[str, str]],
    new_turns: Sequence[TranscriptTurn],
) -> List[Dict[str, str]]:
    """Concatenate a new batch after existing turns.

    If the batch starts before the last stored timestamp (clock skew, legacy
    data stamped at read time), the batch is shifted so timestamps never go
    backwards.
    """
    batch = [turn.model_dump() for turn in new_turns]
    last_existing = None
    for turn in reversed(existing):
        last_existing = parse_timestamp(turn.get("timestamp"))
        if last_existing is not None:
            break
    first_new = parse_timestamp(batch[0]["timestamp"]) if batch else None
    if last_existing is not None and first_new is not None and first_new < last_existing:
        shift = last_existing - first_new
        for turn in batch:
            parsed = parse_timestamp(turn["timestamp"])
            if parsed is not None:
                turn["timestamp"] = _iso(parsed + shift)
    return [*existing, *batch]
