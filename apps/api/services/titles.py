"""Thread title composition."""

from __future__ import annotations

import logging
import random
from typing import Optional

from generation.client import LLMClient
from generation.models import ProductAttributes
from generation.parsing import parse_json_response
from generation.prompts import BANNED_WORDS, TITLE_SYSTEM_INSTRUCTION, build_title_prompt

logger = logging.getLogger(__name__)

TITLE_TAGS = ("【速報】", "【朗報】", "【急げ】", "【話題】", "【注目】")
TITLE_MAX_CHARS = 80


def fallback_thread_title(product: ProductAttributes, rng: Optional[random.Random] = None) -> str:
    """Template title: random tag + manufacturer-qualified name (+ price when known)."""
    rng = rng or random.Random()
    tag = rng.choice(TITLE_TAGS)
    name = product.display_name
    if product.price:
        return f"{tag}{name} が {product.price} になってるんだがｗ"
    return f"{tag}{name} がアツすぎる件"


class ThreadTitleGenerator:
    def __init__(self, llm: LLMClient, rng: Optional[random.Random] = None):
        self.llm = llm
        self.rng = rng or random.Random()

    async def generate(self, product: ProductAttributes) -> str:
        try:
            raw = await self.llm.generate_json(build_title_prompt(product), TITLE_SYSTEM_INSTRUCTION)
        except Exception as exc:
            logger.warning("Title generation fallback: %s", exc)
            return fallback_thread_title(product, self.rng)

        parsed = parse_json_response(raw)
        title = ""
        if parsed.ok and isinstance(parsed.value, dict):
            title = str(parsed.value.get("title") or "").strip()
        if not title or len(title) > TITLE_MAX_CHARS or any(word in title for word in BANNED_WORDS):
            logger.info("Title generation fallback: unusable title %r (%s)", title, parsed.error)
            return fallback_thread_title(product, self.rng)
        return title
