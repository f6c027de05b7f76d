"""
Queue-driven thread pipeline.

One ``advance_queue`` call claims the oldest pending topic, scrapes the page,
extracts product attributes, generates the opening comments and stores a new
PromoThread. ``extend`` grows an existing thread with a few more comments.
Both are invoked by the scheduler endpoints, one linear sequence per call.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from generation import build_llm_client
from generation.models import TranscriptTurn
from models.promo_thread import PromoThread
from services.conversation import ConversationGenerator
from services.extractor import ProductExtractor
from services.identity import rename_speakers
from services.rakuten import RakutenItemClient, build_rakuten_client, is_rakuten_url
from services.scraper import PageFetcher, build_page_fetcher
from services.threads import (
    create_thread,
    get_thread,
    latest_thread,
    random_recent_thread,
    save_transcript,
    serialize_thread,
)
from services.titles import ThreadTitleGenerator
from services.topic_queue import DONE, ERROR, claim_next_topic, mark_topic
from services.transcript import append_turns, context_lines, normalize_transcript, persona_context_lines

logger = logging.getLogger(__name__)

NO_TOPIC = "no_topic"
SKIPPED = "skipped"
SCRAPE_FAILED = "scrape_failed"
CREATED = "created"
EXTENDED = "extended"
NO_THREAD = "no_thread"
NO_NEW_COMMENTS = "no_new_comments"

EXTENSION_MODES = ("latest", "random")


@dataclass
class WorkOutcome:
    status: str
    message: Optional[str] = None
    detail: Optional[str] = None
    topic_id: Optional[str] = None
    thread_id: Optional[str] = None
    thread: Optional[Dict[str, Any]] = None
    added_count: Optional[int] = None
    new_comments: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"status": self.status}
        for key in ("message", "detail", "topic_id", "thread_id", "thread", "added_count"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


def thread_product_info(thread: PromoThread) -> str:
    return f"{thread.product_name}\n{thread.key_features or ''}"


def _priority_info(
    title: Optional[str],
    affiliate_text: Optional[str],
    context: Optional[str],
    rakuten_details: str,
) -> str:
    """Operator-supplied and official product text placed ahead of the scraped page."""
    sections = []
    if title:
        sections.append(f"【商品名（運営指定）】\n{title}")
    if rakuten_details:
        sections.append(f"【公式商品情報（楽天市場）】\n{rakuten_details}")
    if affiliate_text:
        sections.append(f"【アフィリエイト紹介文】\n{affiliate_text}")
    if context:
        sections.append(f"【補足コンテキスト】\n{context}")
    return "\n\n".join(sections)


class ContentPipeline:
    def __init__(
        self,
        fetcher: PageFetcher,
        extractor: ProductExtractor,
        generator: ConversationGenerator,
        titler: ThreadTitleGenerator,
        rakuten: Optional[RakutenItemClient] = None,
        rng: Optional[random.Random] = None,
        fallback_extend: bool = True,
        use_og_image: bool = True,
        initial_target: int = 10,
        initial_cap: int = 12,
    ):
        self.fetcher = fetcher
        self.extractor = extractor
        self.generator = generator
        self.titler = titler
        self.rakuten = rakuten
        self.rng = rng or random.Random()
        self.fallback_extend = fallback_extend
        self.use_og_image = use_og_image
        self.initial_target = initial_target
        self.initial_cap = initial_cap

    async def advance_queue(self, db: AsyncSession) -> WorkOutcome:
        """Process at most one queued topic.

        A claimed row always ends in ``done`` or ``error``; unexpected failures
        are recorded on the row and re-raised.
        """
        topic = await claim_next_topic(db)
        if topic is None:
            if self.fallback_extend:
                logger.info("Topic queue empty; extending a random thread instead")
                return await self.extend(db, "random")
            return WorkOutcome(status=NO_TOPIC, message="pending の topic_queue はありません。")

        topic_id = topic.id
        try:
            url = (topic.url or "").strip()
            if not url:
                await mark_topic(db, topic_id, DONE)
                return WorkOutcome(
                    status=SKIPPED,
                    message="URL が空の topic_queue レコードをスキップしました。",
                    topic_id=topic_id,
                )

            outcome = await self.create_thread_from_url(
                db,
                url,
                affiliate_url=topic.affiliate_url,
                title=topic.title,
                affiliate_text=topic.affiliate_text,
                context=topic.context,
            )
            await mark_topic(db, topic_id, DONE, outcome.detail)
            outcome.topic_id = topic_id
            return outcome
        except Exception as exc:
            logger.exception("Queue processing failed for topic %s", topic_id)
            await db.rollback()
            await mark_topic(db, topic_id, ERROR, str(exc) or exc.__class__.__name__)
            raise

    async def _enrichment(self, url: str, affiliate_url: Optional[str]) -> str:
        if self.rakuten is None or not self.rakuten.enabled:
            return ""
        for candidate in (url, affiliate_url):
            if candidate and is_rakuten_url(candidate):
                details = await self.rakuten.get_item_details(candidate)
                if details:
                    return details
        return ""

    async def create_thread_from_url(
        self,
        db: AsyncSession,
        url: str,
        affiliate_url: Optional[str] = None,
        title: Optional[str] = None,
        affiliate_text: Optional[str] = None,
        context: Optional[str] = None,
    ) -> WorkOutcome:
        """Scrape, extract, generate and store one thread. Nothing is written on scrape failure."""
        url = url.strip()
        scraped = await self.fetcher.fetch(url)
        if not scraped.ok:
            return WorkOutcome(
                status=SCRAPE_FAILED,
                message="ページから商品情報を自動取得できませんでした。",
                detail=scraped.error,
            )

        priority = _priority_info(
            (title or "").strip(),
            (affiliate_text or "").strip(),
            (context or "").strip(),
            await self._enrichment(url, affiliate_url),
        )
        page_text = f"{priority}\n\n【Webページ本文】\n{scraped.text}" if priority else scraped.text

        image = None
        if self.use_og_image and scraped.og_image:
            image = await self.fetcher.fetch_image(scraped.og_image)

        product = await self.extractor.extract(page_text, image)
        product_info = product.to_product_info(url=url, extra=(context or "").strip() or None)

        turns = await self.generator.generate_initial(
            product_info,
            image,
            target=self.initial_target,
            cap=self.initial_cap,
        )
        turns = rename_speakers(turns, self.rng)
        thread_title = await self.titler.generate(product)

        thread = await create_thread(
            db,
            product_name=thread_title,
            source_url=url,
            affiliate_url=(affiliate_url or "").strip() or url,
            key_features=product.to_key_features(),
            og_image_url=scraped.og_image,
            transcript=[turn.model_dump() for turn in turns],
        )
        logger.info("Created thread %s with %d turns from %s", thread.id, len(turns), url)
        return WorkOutcome(status=CREATED, thread_id=thread.id, thread=serialize_thread(thread))

    async def _pick_thread(self, db: AsyncSession, selection: str) -> Optional[PromoThread]:
        if selection == "random":
            return await random_recent_thread(db, self.rng)
        return await latest_thread(db)

    async def _append(
        self,
        db: AsyncSession,
        thread: PromoThread,
        new_turns: List[TranscriptTurn],
        existing: List[Dict[str, str]],
    ) -> List[Dict[str, str]]:
        updated = append_turns(existing, new_turns)
        await save_transcript(db, thread, updated)
        return updated

    async def extend(self, db: AsyncSession, selection: str = "latest") -> WorkOutcome:
        if selection not in EXTENSION_MODES:
            raise ValueError(f"Unknown extension mode: {selection}")
        thread = await self._pick_thread(db, selection)
        if thread is None:
            return WorkOutcome(status=NO_THREAD, message="promo_threads にスレッドが存在しません。")

        transcript = normalize_transcript(thread.transcript)
        new_turns = await self.generator.generate_append(
            context_lines(transcript),
            thread_product_info(thread),
        )
        if not new_turns:
            return WorkOutcome(
                status=NO_NEW_COMMENTS,
                message="生成された追いコメントが0件でした。",
                thread_id=thread.id,
            )

        await self._append(db, thread, new_turns, transcript)
        logger.info("Extended thread %s by %d turns", thread.id, len(new_turns))
        return WorkOutcome(status=EXTENDED, thread_id=thread.id, added_count=len(new_turns))

    async def append_live_comments(
        self,
        db: AsyncSession,
        thread_id: str,
    ) -> Tuple[List[Dict[str, str]], List[Dict[str, str]]]:
        """Returns ``(new_turns, full_transcript)``; raises LookupError for an unknown thread."""
        thread = await get_thread(db, thread_id)
        if thread is None:
            raise LookupError(thread_id)

        transcript = normalize_transcript(thread.transcript)
        new_turns = await self.generator.generate_append(
            context_lines(transcript),
            thread_product_info(thread),
        )
        if not new_turns:
            return [], transcript
        updated = await self._append(db, thread, new_turns, transcript)
        return updated[len(transcript):], updated

    async def add_stream_comments(
        self,
        db: AsyncSession,
        thread_id: str,
    ) -> Tuple[List[Dict[str, str]], List[Dict[str, str]]]:
        """Like append_live_comments, but the model invents the personas and their names."""
        thread = await get_thread(db, thread_id)
        if thread is None:
            raise LookupError(thread_id)

        transcript = normalize_transcript(thread.transcript)
        new_turns = await self.generator.generate_stream(
            persona_context_lines(transcript),
            thread_product_info(thread),
        )
        if not new_turns:
            return [], transcript
        updated = await self._append(db, thread, new_turns, transcript)
        return updated[len(transcript):], updated

    async def continue_thread(self, db: AsyncSession, thread_id: str) -> WorkOutcome:
        thread = await get_thread(db, thread_id)
        if thread is None:
            raise LookupError(thread_id)

        transcript = normalize_transcript(thread.transcript)
        new_turns = await self.generator.generate_continuation(
            context_lines(transcript),
            thread_product_info(thread),
        )
        if not new_turns:
            return WorkOutcome(status=NO_NEW_COMMENTS, thread_id=thread.id)

        updated = await self._append(db, thread, new_turns, transcript)
        return WorkOutcome(
            status=EXTENDED,
            thread_id=thread.id,
            added_count=len(new_turns),
            new_comments=updated[len(transcript):],
        )


def build_pipeline(settings: Any) -> ContentPipeline:
    llm = build_llm_client(settings)
    rng = random.Random()
    return ContentPipeline(
        fetcher=build_page_fetcher(settings),
        extractor=ProductExtractor(llm, max_chars=settings.EXTRACTION_MAX_CHARS),
        generator=ConversationGenerator(llm, rng=rng),
        titler=ThreadTitleGenerator(llm, rng=rng),
        rakuten=build_rakuten_client(settings),
        rng=rng,
        fallback_extend=settings.QUEUE_EMPTY_FALLBACK_EXTEND,
        use_og_image=settings.USE_OG_IMAGE_FOR_EXTRACTION,
        initial_target=settings.INITIAL_TURN_TARGET,
        initial_cap=settings.INITIAL_TURN_CAP,
    )


@lru_cache(maxsize=1)
def get_pipeline() -> ContentPipeline:
    """FastAPI dependency; one pipeline per process."""
    return build_pipeline(settings)
