"""Forum comment generation: initial thread batch, live appends and follow-ups."""

from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from generation.client import LLMClient
from generation.models import GeneratedComment, ImagePart, TranscriptTurn
from generation.parsing import parse_json_response
from generation.prompts import (
    APPEND_SYSTEM_INSTRUCTION,
    CONTINUATION_SYSTEM_INSTRUCTION,
    STREAM_SYSTEM_INSTRUCTION,
    build_append_prompt,
    build_continuation_prompt,
    build_stream_prompt,
)
from services.errors import GenerationError
from services.identity import fresh_names_for
from services.transcript import chronological_context, parse_timestamp, stamp_comments

logger = logging.getLogger(__name__)

CommentFilter = Callable[[List[TranscriptTurn]], List[TranscriptTurn]]

STREAM_MAX_COMMENTS = 3
APPEND_MAX_COMMENTS = 3
CONTINUATION_MAX_COMMENTS = 10


def no_comment_filter(turns: List[TranscriptTurn]) -> List[TranscriptTurn]:
    return turns


def parse_comments(raw: str, limit: int) -> List[GeneratedComment]:
    """Read ``{"comments": [...]}`` from a model response."""
    parsed = parse_json_response(raw)
    if not parsed.ok:
        raise GenerationError(f"Comment generation failed: {parsed.error}")
    payload = parsed.value
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        items = payload.get("comments") or []
    else:
        items = []
    if not isinstance(items, list):
        raise GenerationError("Comment generation failed: comments is not a list")

    comments: List[GeneratedComment] = []
    for item in items[:limit]:
        if not isinstance(item, dict):
            continue
        comments.append(GeneratedComment(
            speaker_name=str(item.get("speaker_name") or "").strip(),
            speaker_attribute=str(item.get("speaker_attribute") or "").strip(),
            content=str(item.get("content") or "").strip(),
        ))
    return comments


class ConversationGenerator:
    def __init__(
        self,
        llm: LLMClient,
        rng: Optional[random.Random] = None,
        comment_filter: Optional[CommentFilter] = None,
    ):
        self.llm = llm
        self.rng = rng or random.Random()
        self.comment_filter = comment_filter or no_comment_filter

    async def _generate(
        self,
        prompt: str,
        system_instruction: str,
        limit: int,
        image: Optional[ImagePart] = None,
    ) -> List[TranscriptTurn]:
        raw = await self.llm.generate_json(prompt, system_instruction, image)
        turns = stamp_comments(parse_comments(raw, limit))
        return self.comment_filter(turns)

    def _with_fresh_names(self, turns: List[TranscriptTurn]) -> List[TranscriptTurn]:
        names = fresh_names_for(len(turns), self.rng)
        return [turn.model_copy(update={"speaker_name": name}) for turn, name in zip(turns, names)]

    async def generate_stream(
        self,
        context: Sequence[str],
        product_info: str,
        image: Optional[ImagePart] = None,
    ) -> List[TranscriptTurn]:
        """1-3 new comments, each from a new persona. Model-chosen names are kept."""
        return await self._generate(
            build_stream_prompt(context, product_info),
            STREAM_SYSTEM_INSTRUCTION,
            STREAM_MAX_COMMENTS,
            image,
        )

    async def generate_initial(
        self,
        product_info: str,
        image: Optional[ImagePart] = None,
        target: int = 10,
        cap: int = 12,
    ) -> List[TranscriptTurn]:
        """Accumulate stream batches until ``target`` turns exist.

        Stops early on an empty batch or once more than ``cap`` turns were
        collected. The first ``target`` turns are restamped one second apart.
        """
        turns: List[TranscriptTurn] = []
        while len(turns) < target:
            batch = await self.generate_stream(chronological_context(turns), product_info, image)
            if not batch:
                logger.info("Initial generation exhausted after %d turns", len(turns))
                break
            turns.extend(batch)
            if len(turns) > cap:
                break

        selected = turns[:target]
        if not selected:
            return []
        base = parse_timestamp(selected[0].timestamp) or datetime.now(timezone.utc)
        return [
            turn.model_copy(update={"timestamp": (base + timedelta(seconds=idx)).isoformat(timespec="milliseconds")})
            for idx, turn in enumerate(selected)
        ]

    async def generate_append(
        self,
        context: Sequence[str],
        product_info: str,
        image: Optional[ImagePart] = None,
    ) -> List[TranscriptTurn]:
        turns = await self._generate(
            build_append_prompt(context, product_info),
            APPEND_SYSTEM_INSTRUCTION,
            APPEND_MAX_COMMENTS,
            image,
        )
        return self._with_fresh_names(turns)

    async def generate_continuation(
        self,
        context: Sequence[str],
        product_info: str,
    ) -> List[TranscriptTurn]:
        """Follow-up comments framed as hours or days later (purchase reports, reviews)."""
        turns = await self._generate(
            build_continuation_prompt(context, product_info),
            CONTINUATION_SYSTEM_INSTRUCTION,
            CONTINUATION_MAX_COMMENTS,
        )
        return self._with_fresh_names(turns)
