"""
Operator actions that run the pipeline directly, outside the queue.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AdminContext, require_admin
from services.pipeline import SCRAPE_FAILED, ContentPipeline, get_pipeline

router = APIRouter()
logger = logging.getLogger(__name__)


class AutoGenerateRequest(BaseModel):
    target_url: str = ""
    affiliate_url: Optional[str] = None


@router.post("/auto-generate-thread")
async def auto_generate_thread(
    request: AutoGenerateRequest,
    admin: AdminContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    pipeline: ContentPipeline = Depends(get_pipeline),
):
    """One-shot scrape/extract/generate for a single URL. Returns the stored thread."""
    target_url = request.target_url.strip()
    if not target_url:
        raise HTTPException(status_code=400, detail="target_url は必須です")
    try:
        outcome = await pipeline.create_thread_from_url(db, target_url, affiliate_url=request.affiliate_url)
    except Exception as exc:
        logger.exception("auto-generate-thread failed for %s", target_url)
        raise HTTPException(status_code=500, detail=str(exc) or "スレッドの自動生成に失敗しました。") from exc

    if outcome.status == SCRAPE_FAILED:
        return outcome.to_dict()
    return outcome.thread
