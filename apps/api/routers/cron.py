"""
Scheduler endpoints. Each call performs one unit of queue or extension work.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import require_cron_key
from services.pipeline import ContentPipeline, get_pipeline

router = APIRouter(dependencies=[Depends(require_cron_key)])
logger = logging.getLogger(__name__)


@router.api_route("/create-thread", methods=["GET", "POST"])
async def create_thread_endpoint(
    db: AsyncSession = Depends(get_db),
    pipeline: ContentPipeline = Depends(get_pipeline),
):
    try:
        outcome = await pipeline.advance_queue(db)
    except Exception as exc:
        logger.exception("cron/create-thread failed")
        raise HTTPException(
            status_code=500,
            detail=str(exc) or "cron/create-thread 実行中にエラーが発生しました。",
        ) from exc
    return outcome.to_dict()


@router.api_route("/extend-thread", methods=["GET", "POST"])
async def extend_thread_endpoint(
    db: AsyncSession = Depends(get_db),
    pipeline: ContentPipeline = Depends(get_pipeline),
):
    try:
        outcome = await pipeline.extend(db, "latest")
    except Exception as exc:
        logger.exception("cron/extend-thread failed")
        raise HTTPException(
            status_code=500,
            detail=str(exc) or "cron/extend-thread 実行中にエラーが発生しました。",
        ) from exc
    return outcome.to_dict()
