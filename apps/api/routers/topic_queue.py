"""
Topic queue router: operator intake, listing, requeue and title lookup.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AdminContext, require_admin
from services.pipeline import ContentPipeline, get_pipeline
from services.scraper import TitleFetchError
from services.topic_queue import (
    PENDING,
    add_topic,
    delete_topic,
    list_topics,
    requeue_topic,
    serialize_topic,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class AddTopicRequest(BaseModel):
    url: str = ""
    title: Optional[str] = None
    affiliate_url: Optional[str] = None
    affiliate_text: Optional[str] = None
    context: Optional[str] = None


class UpdateTopicRequest(BaseModel):
    id: str = ""
    status: str = ""


@router.post("")
async def add_topic_endpoint(
    request: AddTopicRequest,
    admin: AdminContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if not request.url.strip():
        raise HTTPException(status_code=400, detail="url は必須です")
    try:
        item = await add_topic(
            db,
            url=request.url,
            title=request.title,
            affiliate_url=request.affiliate_url,
            affiliate_text=request.affiliate_text,
            context=request.context,
        )
    except Exception as exc:
        logger.exception("topic_queue insert failed")
        raise HTTPException(status_code=500, detail="topic_queue への追加に失敗しました。") from exc
    return serialize_topic(item)


@router.get("")
async def list_topics_endpoint(
    admin: AdminContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    items = await list_topics(db)
    return [serialize_topic(item) for item in items]


@router.patch("")
async def requeue_topic_endpoint(
    request: UpdateTopicRequest,
    admin: AdminContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if not request.id.strip():
        raise HTTPException(status_code=400, detail="id は必須です")
    if request.status != PENDING:
        raise HTTPException(status_code=400, detail="status は pending のみ指定できます")
    item = await requeue_topic(db, request.id.strip())
    if item is None:
        raise HTTPException(status_code=404, detail="topic が見つかりません")
    return serialize_topic(item)


@router.get("/fetch-title")
async def fetch_title_endpoint(
    url: str = Query(""),
    admin: AdminContext = Depends(require_admin),
    pipeline: ContentPipeline = Depends(get_pipeline),
):
    if not url.strip():
        raise HTTPException(status_code=400, detail="url は必須です")
    try:
        title = await pipeline.fetcher.fetch_title(url)
    except TitleFetchError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return {"title": title}


async def _delete_or_404(db: AsyncSession, topic_id: str):
    if not topic_id.strip():
        raise HTTPException(status_code=400, detail="id は必須です")
    deleted = await delete_topic(db, topic_id.strip())
    if not deleted:
        raise HTTPException(status_code=404, detail="topic が見つかりません")
    return {"success": True}


@router.delete("")
async def delete_topic_by_query_endpoint(
    id: str = Query(""),
    admin: AdminContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await _delete_or_404(db, id)


@router.delete("/{topic_id}")
async def delete_topic_endpoint(
    topic_id: str,
    admin: AdminContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await _delete_or_404(db, topic_id)
