"""PromoThread persistence helpers."""

from __future__ import annotations

import random
from typing import Any, Dict, List, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.promo_thread import PromoThread
from services.transcript import normalize_transcript

THREAD_LIST_LIMIT = 50
RANDOM_POOL_LIMIT = 100


def serialize_thread(thread: PromoThread) -> Dict[str, Any]:
    return {
        "id": thread.id,
        "product_name": thread.product_name,
        "source_url": thread.source_url,
        "affiliate_url": thread.affiliate_url,
        "key_features": thread.key_features or "",
        "og_image_url": thread.og_image_url,
        "cast_profiles": thread.cast_profiles or [],
        "transcript": normalize_transcript(thread.transcript),
        "created_at": thread.created_at.isoformat() if thread.created_at else None,
    }


async def list_threads(db: AsyncSession, limit: int = THREAD_LIST_LIMIT) -> List[PromoThread]:
    result = await db.execute(
        select(PromoThread).order_by(PromoThread.created_at.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def get_thread(db: AsyncSession, thread_id: str) -> Optional[PromoThread]:
    result = await db.execute(select(PromoThread).where(PromoThread.id == thread_id))
    return result.scalar_one_or_none()


async def latest_thread(db: AsyncSession) -> Optional[PromoThread]:
    result = await db.execute(select(PromoThread).order_by(PromoThread.created_at.desc()).limit(1))
    return result.scalar_one_or_none()


async def random_recent_thread(
    db: AsyncSession,
    rng: Optional[random.Random] = None,
    limit: int = RANDOM_POOL_LIMIT,
) -> Optional[PromoThread]:
    """Uniform pick among the ``limit`` newest threads."""
    threads = await list_threads(db, limit=limit)
    if not threads:
        return None
    return (rng or random.Random()).choice(threads)


async def create_thread(
    db: AsyncSession,
    *,
    product_name: str,
    source_url: Optional[str],
    affiliate_url: Optional[str],
    key_features: str,
    og_image_url: Optional[str],
    transcript: List[Dict[str, str]],
    cast_profiles: Optional[List[Dict[str, Any]]] = None,
) -> PromoThread:
    thread = PromoThread(
        product_name=product_name,
        source_url=source_url,
        affiliate_url=affiliate_url,
        key_features=key_features or "",
        og_image_url=og_image_url,
        cast_profiles=cast_profiles or [],
        transcript=transcript,
    )
    db.add(thread)
    await db.commit()
    await db.refresh(thread)
    return thread


async def save_transcript(db: AsyncSession, thread: PromoThread, transcript: List[Dict[str, str]]) -> PromoThread:
    """Overwrite the whole transcript array; a new list so the JSON column is flagged dirty."""
    thread.transcript = list(transcript)
    await db.commit()
    await db.refresh(thread)
    return thread


async def delete_thread(db: AsyncSession, thread_id: str) -> bool:
    result = await db.execute(delete(PromoThread).where(PromoThread.id == thread_id))
    await db.commit()
    return bool(result.rowcount)
