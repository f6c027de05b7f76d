"""Topic queue persistence: intake, conditional claim and status transitions."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import async_session_maker
from models.topic_queue_item import TopicQueueItem

logger = logging.getLogger(__name__)

PENDING = "pending"
PROCESSING = "processing"
DONE = "done"
ERROR = "error"

CLAIM_ATTEMPTS = 5
QUEUE_LIST_LIMIT = 100


def _clean(value: Optional[str]) -> Optional[str]:
    text = (value or "").strip()
    return text or None


def serialize_topic(item: TopicQueueItem) -> dict:
    return {
        "id": item.id,
        "url": item.url,
        "title": item.title,
        "affiliate_url": item.affiliate_url,
        "affiliate_text": item.affiliate_text,
        "context": item.context,
        "status": item.status,
        "error_message": item.error_message,
        "created_at": item.created_at.isoformat() if item.created_at else None,
    }


async def add_topic(
    db: AsyncSession,
    *,
    url: str,
    title: Optional[str] = None,
    affiliate_url: Optional[str] = None,
    affiliate_text: Optional[str] = None,
    context: Optional[str] = None,
) -> TopicQueueItem:
    cleaned_url = (url or "").strip()
    if not cleaned_url:
        raise ValueError("url is required")
    item = TopicQueueItem(
        url=cleaned_url,
        title=_clean(title),
        affiliate_url=_clean(affiliate_url),
        affiliate_text=_clean(affiliate_text),
        context=_clean(context),
        status=PENDING,
    )
    db.add(item)
    await db.commit()
    await db.refresh(item)
    return item


async def list_topics(db: AsyncSession, limit: int = QUEUE_LIST_LIMIT) -> List[TopicQueueItem]:
    result = await db.execute(
        select(TopicQueueItem).order_by(TopicQueueItem.created_at.asc()).limit(limit)
    )
    return list(result.scalars().all())


async def get_topic(db: AsyncSession, topic_id: str) -> Optional[TopicQueueItem]:
    result = await db.execute(select(TopicQueueItem).where(TopicQueueItem.id == topic_id))
    return result.scalar_one_or_none()


async def requeue_topic(db: AsyncSession, topic_id: str) -> Optional[TopicQueueItem]:
    """Operator action: put a processed row back to pending."""
    item = await get_topic(db, topic_id)
    if item is None:
        return None
    item.status = PENDING
    item.error_message = None
    await db.commit()
    await db.refresh(item)
    return item


async def delete_topic(db: AsyncSession, topic_id: str) -> bool:
    result = await db.execute(delete(TopicQueueItem).where(TopicQueueItem.id == topic_id))
    await db.commit()
    return bool(result.rowcount)


async def claim_next_topic(db: AsyncSession) -> Optional[TopicQueueItem]:
    """Atomically move the oldest pending row to ``processing`` and return it.

    The status change is a conditional UPDATE; a row another worker claimed
    first yields rowcount 0 and the next candidate is tried.
    """
    for _ in range(CLAIM_ATTEMPTS):
        result = await db.execute(
            select(TopicQueueItem.id)
            .where(TopicQueueItem.status == PENDING)
            .order_by(TopicQueueItem.created_at.asc())
            .limit(1)
        )
        candidate_id = result.scalar_one_or_none()
        if candidate_id is None:
            return None

        claimed = await db.execute(
            update(TopicQueueItem)
            .where(TopicQueueItem.id == candidate_id, TopicQueueItem.status == PENDING)
            .values(status=PROCESSING)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if claimed.rowcount == 1:
            item = await get_topic(db, candidate_id)
            if item is not None:
                await db.refresh(item)
            return item
        logger.info("Topic %s was claimed by another worker; retrying", candidate_id)
    return None


async def mark_topic(
    db: AsyncSession,
    topic_id: str,
    status: str,
    error_message: Optional[str] = None,
) -> None:
    await db.execute(
        update(TopicQueueItem)
        .where(TopicQueueItem.id == topic_id)
        .values(status=status, error_message=(error_message[:1000] if error_message else None))
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def recover_stalled_topics(max_age_minutes: int = 30) -> int:
    """Mark rows stuck in ``processing`` after a crash or restart as failed."""
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=max(max_age_minutes, 1))
    async with async_session_maker() as db:
        result = await db.execute(
            select(TopicQueueItem).where(
                TopicQueueItem.status == PROCESSING,
                func.coalesce(TopicQueueItem.updated_at, TopicQueueItem.created_at) < cutoff,
            )
        )
        items = result.scalars().all()
        for item in items:
            item.status = ERROR
            item.error_message = "Processing was interrupted. Requeue the topic to retry."
        if items:
            await db.commit()
        return len(items)
