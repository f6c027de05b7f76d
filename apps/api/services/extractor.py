"""Structured product attribute extraction from scraped page text."""

from __future__ import annotations

import logging
from typing import Optional

from generation.client import LLMClient
from generation.models import ImagePart, ProductAttributes
from generation.parsing import parse_json_response
from generation.prompts import EXTRACTION_SYSTEM_INSTRUCTION, build_extraction_prompt
from services.errors import ExtractionError

logger = logging.getLogger(__name__)


class ProductExtractor:
    def __init__(self, llm: LLMClient, max_chars: int = 10000):
        self.llm = llm
        self.max_chars = max_chars

    async def extract(self, page_text: str, image: Optional[ImagePart] = None) -> ProductAttributes:
        raw = await self.llm.generate_json(
            build_extraction_prompt(page_text, self.max_chars),
            EXTRACTION_SYSTEM_INSTRUCTION,
            image,
        )
        parsed = parse_json_response(raw)
        if not parsed.ok:
            logger.warning("Product extraction returned unusable JSON: %s", parsed.error)
            raise ExtractionError(f"Product extraction failed: {parsed.error}")
        if not isinstance(parsed.value, dict):
            raise ExtractionError("Product extraction failed: expected a JSON object")
        return ProductAttributes.from_raw(parsed.value)
