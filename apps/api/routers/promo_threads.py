"""
Promo thread router: public reads, live comment appends and operator actions.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.auth_scope import AdminContext, require_admin
from routers.rate_limit import rate_limit
from services.pipeline import ContentPipeline, get_pipeline
from services.threads import delete_thread, get_thread, list_threads, serialize_thread

router = APIRouter()
logger = logging.getLogger(__name__)


class AppendCommentsRequest(BaseModel):
    thread_id: str = ""


@router.get("")
async def list_threads_endpoint(db: AsyncSession = Depends(get_db)):
    threads = await list_threads(db)
    return [serialize_thread(thread) for thread in threads]


@router.post("/append-comments")
async def append_comments_endpoint(
    request: AppendCommentsRequest,
    _rate_limit: None = Depends(rate_limit(
        "append_comments",
        limit=settings.APPEND_COMMENTS_RATE_LIMIT,
        window_seconds=settings.APPEND_COMMENTS_RATE_WINDOW_SECONDS,
    )),
    db: AsyncSession = Depends(get_db),
    pipeline: ContentPipeline = Depends(get_pipeline),
):
    thread_id = request.thread_id.strip()
    if not thread_id:
        raise HTTPException(status_code=400, detail="thread_id が必要です")
    try:
        new_comments, transcript = await pipeline.append_live_comments(db, thread_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail="スレッドが見つかりません") from exc
    except Exception as exc:
        logger.exception("append-comments failed for thread %s", thread_id)
        raise HTTPException(status_code=500, detail=str(exc) or "追いコメントの追加に失敗しました") from exc
    return {"new_comments": new_comments, "transcript": transcript}


@router.post("/add-comment-stream")
async def add_comment_stream_endpoint(
    request: AppendCommentsRequest,
    _rate_limit: None = Depends(rate_limit(
        "add_comment_stream",
        limit=settings.APPEND_COMMENTS_RATE_LIMIT,
        window_seconds=settings.APPEND_COMMENTS_RATE_WINDOW_SECONDS,
    )),
    db: AsyncSession = Depends(get_db),
    pipeline: ContentPipeline = Depends(get_pipeline),
):
    thread_id = request.thread_id.strip()
    if not thread_id:
        raise HTTPException(status_code=400, detail="thread_id が必要です")
    try:
        new_comments, transcript = await pipeline.add_stream_comments(db, thread_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail="スレッドが見つかりません") from exc
    except Exception as exc:
        logger.exception("add-comment-stream failed for thread %s", thread_id)
        raise HTTPException(status_code=500, detail=str(exc) or "コメントの追加に失敗しました") from exc
    return {"new_comments": new_comments, "transcript": transcript}


@router.get("/{thread_id}")
async def get_thread_endpoint(thread_id: str, db: AsyncSession = Depends(get_db)):
    thread = await get_thread(db, thread_id)
    if thread is None:
        raise HTTPException(status_code=404, detail="スレッドが見つかりません")
    return serialize_thread(thread)


@router.delete("/{thread_id}")
async def delete_thread_endpoint(
    thread_id: str,
    admin: AdminContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    deleted = await delete_thread(db, thread_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="スレッドが見つかりません")
    return {"success": True}


@router.post("/{thread_id}/continuation")
async def continuation_endpoint(
    thread_id: str,
    admin: AdminContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    pipeline: ContentPipeline = Depends(get_pipeline),
):
    try:
        outcome = await pipeline.continue_thread(db, thread_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail="スレッドが見つかりません") from exc
    except Exception as exc:
        logger.exception("Continuation failed for thread %s", thread_id)
        raise HTTPException(status_code=500, detail=str(exc) or "続きの生成に失敗しました") from exc
    return {**outcome.to_dict(), "new_comments": outcome.new_comments}
