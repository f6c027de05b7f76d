from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import select

from fakes import (
    EXTRACTION_JSON,
    TITLE_JSON,
    FakeFetcher,
    ScriptedLLM,
    build_test_pipeline,
    comments_json,
)
from generation.models import ImagePart, ScrapeResult
from models.promo_thread import PromoThread
from models.topic_queue_item import TopicQueueItem
from services.errors import ExtractionError
from services.topic_queue import claim_next_topic, recover_stalled_topics
from services.transcript import parse_timestamp

BASE_TIME = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


def _initial_script(batches: int = 4):
    responses = [EXTRACTION_JSON]
    responses += [comments_json("A", "B", "C", prefix=f"b{i}-") for i in range(batches)]
    responses.append(TITLE_JSON)
    return responses


async def _queue(session_maker, *items):
    """Insert queue rows with strictly increasing created_at."""
    ids = []
    async with session_maker() as db:
        for offset, fields in enumerate(items):
            row = TopicQueueItem(status="pending", created_at=BASE_TIME + timedelta(minutes=offset), **fields)
            db.add(row)
            await db.flush()
            ids.append(row.id)
        await db.commit()
    return ids


async def _thread(session_maker, transcript, minutes=0, name="【朗報】X1"):
    async with session_maker() as db:
        thread = PromoThread(
            product_name=name,
            source_url="https://shop.example.com/x1",
            affiliate_url="https://shop.example.com/x1",
            key_features="【抽出された注目情報】",
            cast_profiles=[],
            transcript=transcript,
            created_at=BASE_TIME + timedelta(minutes=minutes),
        )
        db.add(thread)
        await db.commit()
        return thread.id


async def _status(session_maker, topic_id):
    async with session_maker() as db:
        row = (await db.execute(select(TopicQueueItem).where(TopicQueueItem.id == topic_id))).scalar_one()
        return row.status, row.error_message


@pytest.mark.asyncio
async def test_end_to_end_queue_item_becomes_thread(session_maker):
    (topic_id,) = await _queue(session_maker, {"url": "https://shop.example.com/x1"})
    llm = ScriptedLLM(_initial_script())
    fetcher = FakeFetcher(ScrapeResult(ok=True, text="Acme X1 12,800円", og_image="https://cdn.example.com/x1.jpg"))
    pipeline = build_test_pipeline(llm, fetcher)

    async with session_maker() as db:
        outcome = await pipeline.advance_queue(db)

    assert outcome.status == "created"
    assert outcome.topic_id == topic_id
    thread = outcome.thread
    assert thread["product_name"] == "【朗報】Acme X1 が 12,800円 で買えるｗ"
    assert thread["source_url"] == "https://shop.example.com/x1"
    assert thread["affiliate_url"] == "https://shop.example.com/x1"
    assert thread["og_image_url"] == "https://cdn.example.com/x1.jpg"
    assert thread["cast_profiles"] == []
    assert "ワイヤレスイヤホン X1" in thread["key_features"]

    transcript = thread["transcript"]
    assert len(transcript) == 10
    assert not {"A", "B", "C"} & {t["speaker_name"] for t in transcript}
    assert len({t["speaker_name"] for t in transcript}) == 3
    stamps = [parse_timestamp(t["timestamp"]) for t in transcript]
    assert stamps == sorted(stamps)

    assert await _status(session_maker, topic_id) == ("done", None)
    assert fetcher.image_requests == ["https://cdn.example.com/x1.jpg"]


@pytest.mark.asyncio
async def test_queue_drains_oldest_first(session_maker):
    ids = await _queue(
        session_maker,
        {"url": "https://shop.example.com/first"},
        {"url": "https://shop.example.com/second"},
    )
    fetcher = FakeFetcher()
    pipeline = build_test_pipeline(ScriptedLLM(_initial_script() + _initial_script()), fetcher)

    async with session_maker() as db:
        first = await pipeline.advance_queue(db)
        second = await pipeline.advance_queue(db)
        third = await pipeline.advance_queue(db)

    assert [first.topic_id, second.topic_id] == ids
    assert fetcher.fetched == ["https://shop.example.com/first", "https://shop.example.com/second"]
    assert third.status == "no_topic"


@pytest.mark.asyncio
async def test_scrape_failure_marks_done_without_llm_calls(session_maker):
    (topic_id,) = await _queue(session_maker, {"url": "https://shop.example.com/gone"})
    llm = ScriptedLLM()
    pipeline = build_test_pipeline(llm, FakeFetcher(ScrapeResult(ok=False, error="Status 404")))

    async with session_maker() as db:
        outcome = await pipeline.advance_queue(db)
        threads = (await db.execute(select(PromoThread))).scalars().all()

    assert outcome.status == "scrape_failed"
    assert outcome.detail == "Status 404"
    assert llm.calls == []
    assert threads == []
    status, _ = await _status(session_maker, topic_id)
    assert status == "done"


@pytest.mark.asyncio
async def test_blank_url_is_skipped(session_maker):
    (topic_id,) = await _queue(session_maker, {"url": "   "})
    llm = ScriptedLLM()
    fetcher = FakeFetcher()
    pipeline = build_test_pipeline(llm, fetcher)

    async with session_maker() as db:
        outcome = await pipeline.advance_queue(db)

    assert outcome.status == "skipped"
    assert outcome.topic_id == topic_id
    assert fetcher.fetched == []
    assert llm.calls == []
    assert (await _status(session_maker, topic_id))[0] == "done"


@pytest.mark.asyncio
async def test_unexpected_failure_marks_error_and_propagates(session_maker):
    (topic_id,) = await _queue(session_maker, {"url": "https://shop.example.com/x1"})
    pipeline = build_test_pipeline(ScriptedLLM(["not json"]))

    async with session_maker() as db:
        with pytest.raises(ExtractionError):
            await pipeline.advance_queue(db)

    status, message = await _status(session_maker, topic_id)
    assert status == "error"
    assert "Product extraction failed" in message


@pytest.mark.asyncio
async def test_operator_metadata_is_prioritised_in_extraction(session_maker):
    await _queue(session_maker, {
        "url": "https://shop.example.com/x1",
        "title": "Acme X1 正規品",
        "affiliate_url": "https://aff.example.com/x1",
        "affiliate_text": "期間限定セール",
        "context": "ブラックフライデー",
    })
    llm = ScriptedLLM(_initial_script())
    pipeline = build_test_pipeline(llm)

    async with session_maker() as db:
        outcome = await pipeline.advance_queue(db)

    extraction_prompt = llm.calls[0]["prompt"]
    assert extraction_prompt.index("Acme X1 正規品") < extraction_prompt.index("Acme X1 ワイヤレスイヤホン")
    assert "期間限定セール" in extraction_prompt
    assert "ブラックフライデー" in extraction_prompt
    assert outcome.thread["affiliate_url"] == "https://aff.example.com/x1"


@pytest.mark.asyncio
async def test_preview_image_is_passed_to_extraction(session_maker):
    image = ImagePart(data="AAAA", mime_type="image/jpeg")
    fetcher = FakeFetcher(ScrapeResult(ok=True, text="page", og_image="https://cdn.example.com/a.jpg"), image=image)
    llm = ScriptedLLM(_initial_script())
    pipeline = build_test_pipeline(llm, fetcher)

    async with session_maker() as db:
        await pipeline.create_thread_from_url(db, "https://shop.example.com/x1")

    assert llm.calls[0]["image"] is image


@pytest.mark.asyncio
async def test_empty_queue_falls_back_to_random_extension(session_maker):
    thread_id = await _thread(session_maker, [{"speaker": "Taro", "content": "安い"}])
    llm = ScriptedLLM([comments_json("x", "y")])
    pipeline = build_test_pipeline(llm, fallback_extend=True)

    async with session_maker() as db:
        outcome = await pipeline.advance_queue(db)

    assert outcome.status == "extended"
    assert outcome.thread_id == thread_id
    assert outcome.added_count == 2


@pytest.mark.asyncio
async def test_extend_latest_appends_after_existing_turns(session_maker):
    await _thread(session_maker, [{"speaker": "old", "content": "古い"}], minutes=0)
    legacy = [
        {"speaker": "Taro", "content": "安い"},
        {"speaker": "Hanako", "content": "ポチった", "timestamp": "2030-01-01T00:00:00.000+00:00"},
    ]
    latest_id = await _thread(session_maker, legacy, minutes=5)
    llm = ScriptedLLM([comments_json("x", "y", "z")])
    pipeline = build_test_pipeline(llm)

    async with session_maker() as db:
        outcome = await pipeline.extend(db, "latest")

    assert outcome.status == "extended"
    assert outcome.thread_id == latest_id
    assert outcome.added_count == 3
    assert "Hanako「ポチった」\n2. Taro「安い」" in llm.calls[0]["prompt"]

    async with session_maker() as db:
        stored = (await db.execute(select(PromoThread).where(PromoThread.id == latest_id))).scalar_one()
    contents = [t["content"] for t in stored.transcript]
    assert contents[:2] == ["安い", "ポチった"]
    assert len(contents) == 5
    new_stamp = parse_timestamp(stored.transcript[2]["timestamp"])
    assert new_stamp >= parse_timestamp("2030-01-01T00:00:00.000+00:00")


@pytest.mark.asyncio
async def test_extend_with_no_new_comments_does_not_write(session_maker):
    thread_id = await _thread(session_maker, [{"speaker": "Taro", "content": "安い"}])
    pipeline = build_test_pipeline(ScriptedLLM(['{"comments": []}']))

    async with session_maker() as db:
        outcome = await pipeline.extend(db, "latest")
        stored = (await db.execute(select(PromoThread).where(PromoThread.id == thread_id))).scalar_one()

    assert outcome.status == "no_new_comments"
    assert stored.transcript == [{"speaker": "Taro", "content": "安い"}]


@pytest.mark.asyncio
async def test_extend_without_threads(session_maker):
    async with session_maker() as db:
        outcome = await build_test_pipeline(ScriptedLLM()).extend(db, "random")
    assert outcome.status == "no_thread"


@pytest.mark.asyncio
async def test_append_live_comments_returns_batch_and_transcript(session_maker):
    thread_id = await _thread(session_maker, [{"speaker": "Taro", "content": "安い"}])
    pipeline = build_test_pipeline(ScriptedLLM([comments_json("x", "y")]))

    async with session_maker() as db:
        new_turns, transcript = await pipeline.append_live_comments(db, thread_id)
        with pytest.raises(LookupError):
            await pipeline.append_live_comments(db, "missing")

    assert [t["content"] for t in new_turns] == ["コメント0", "コメント1"]
    assert len(transcript) == 3
    assert transcript[1:] == new_turns


@pytest.mark.asyncio
async def test_continuation_appends_follow_up_batch(session_maker):
    thread_id = await _thread(session_maker, [{"speaker": "Taro", "content": "安い"}])
    pipeline = build_test_pipeline(ScriptedLLM([comments_json(*[f"n{i}" for i in range(6)])]))

    async with session_maker() as db:
        outcome = await pipeline.continue_thread(db, thread_id)

    assert outcome.status == "extended"
    assert outcome.added_count == 6
    assert len(outcome.new_comments) == 6


@pytest.mark.asyncio
async def test_claim_is_conditional(session_maker):
    ids = await _queue(session_maker, {"url": "https://a.example.com"}, {"url": "https://b.example.com"})

    async with session_maker() as first_db, session_maker() as second_db:
        first = await claim_next_topic(first_db)
        second = await claim_next_topic(second_db)
        third = await claim_next_topic(first_db)

    assert first.id == ids[0]
    assert second.id == ids[1]
    assert first.status == second.status == "processing"
    assert third is None


@pytest.mark.asyncio
async def test_stalled_processing_rows_are_marked_error(session_maker):
    async with session_maker() as db:
        stale = TopicQueueItem(
            url="https://a.example.com",
            status="processing",
            created_at=datetime.now(timezone.utc) - timedelta(hours=2),
        )
        fresh = TopicQueueItem(url="https://b.example.com", status="pending", created_at=BASE_TIME)
        db.add_all([stale, fresh])
        await db.commit()

    with patch("services.topic_queue.async_session_maker", session_maker):
        recovered = await recover_stalled_topics(30)

    assert recovered == 1
    assert (await _status(session_maker, stale.id))[0] == "error"
    assert (await _status(session_maker, fresh.id))[0] == "pending"
