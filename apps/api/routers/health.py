"""
Liveness, readiness and dependency status for the thread service.
"""

from typing import Any, Dict, Tuple

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
import redis.asyncio as redis

from config import settings
from database import engine
from generation.client import get_openai_client
from models.topic_queue_item import TopicQueueItem

router = APIRouter()


async def _database_status() -> Tuple[str, Dict[str, int]]:
    """Return ("up", queue counts by status) or ("down: ...", {})."""
    try:
        async with engine.connect() as conn:
            result = await conn.execute(
                select(TopicQueueItem.status, func.count()).group_by(TopicQueueItem.status)
            )
            counts = {status: int(count) for status, count in result.all()}
        return "up", counts
    except Exception as exc:
        return f"down: {exc}", {}


async def _redis_status() -> str:
    client = redis.from_url(settings.REDIS_URL)
    try:
        await client.ping()
        return "up"
    except Exception as exc:
        return f"down: {exc}"
    finally:
        await client.aclose()


@router.get("/health")
async def health_check():
    database, queue = await _database_status()
    report: Dict[str, Any] = {
        "status": "healthy" if database == "up" else "degraded",
        "api": "up",
        "database": database,
        # Redis only backs rate limiting; local counters take over while it is down.
        "redis": await _redis_status(),
        "llm": "configured" if get_openai_client(settings.OPENAI_API_KEY) else "missing",
        "rakuten": "configured" if settings.RAKUTEN_APP_ID and settings.RAKUTEN_ACCESS_KEY else "disabled",
        "topic_queue": queue,
    }
    return report


@router.get("/health/ready")
async def readiness_check():
    """Ready once the database answers and the scheduler and model credentials exist."""
    missing = []
    if not get_openai_client(settings.OPENAI_API_KEY):
        missing.append("OPENAI_API_KEY")
    if not settings.CRON_API_KEY:
        missing.append("CRON_API_KEY")
    database, _ = await _database_status()
    if database != "up":
        missing.append("DATABASE")

    if missing:
        return JSONResponse(status_code=503, content={"ready": False, "missing": missing})
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    return {"alive": True}
