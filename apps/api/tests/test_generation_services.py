import json
import random

import pytest

from fakes import EXTRACTION_JSON, ScriptedLLM, comments_json
from generation.models import ImagePart, ProductAttributes
from services.conversation import ConversationGenerator, parse_comments
from services.errors import ExtractionError, GenerationError
from services.extractor import ProductExtractor
from services.titles import TITLE_TAGS, ThreadTitleGenerator, fallback_thread_title
from services.transcript import parse_timestamp


@pytest.mark.asyncio
async def test_extraction_coerces_fields_and_truncates_page_text():
    llm = ScriptedLLM([f"```json\n{EXTRACTION_JSON}\n```"])
    image = ImagePart(data="AAAA", mime_type="image/jpeg")

    product = await ProductExtractor(llm, max_chars=20).extract("x" * 100, image)

    assert product.product_name == "ワイヤレスイヤホン X1"
    assert product.key_specs == "Bluetooth 5.3、最大30時間再生"
    assert llm.calls[0]["image"] is image
    assert "x" * 21 not in llm.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_extraction_applies_defaults():
    llm = ScriptedLLM([json.dumps({"price": None})])
    product = await ProductExtractor(llm).extract("page")

    assert product.product_name == "このページの注目商品"
    assert product.selling_point == "ページで紹介されている注目の商品・キャンペーンです。"
    assert product.price == ""


@pytest.mark.asyncio
async def test_extraction_parse_failure_raises():
    with pytest.raises(ExtractionError):
        await ProductExtractor(ScriptedLLM(["not json"])).extract("page")
    with pytest.raises(ExtractionError):
        await ProductExtractor(ScriptedLLM(["[1, 2]"])).extract("page")


def test_product_text_renderings():
    product = ProductAttributes.from_raw(json.loads(EXTRACTION_JSON))
    assert product.display_name == "Acme ワイヤレスイヤホン X1"
    assert "- 価格: 12,800円" in product.to_key_features()
    info = product.to_product_info(url="https://shop.example.com/x1")
    assert info.startswith("商品/キャンペーン名: ワイヤレスイヤホン X1")
    assert info.endswith("参照URL: https://shop.example.com/x1")


def test_parse_comments_limits_and_rejects_bad_payloads():
    comments = parse_comments(comments_json("a", "b", "c", "d"), limit=3)
    assert [c.speaker_name for c in comments] == ["a", "b", "c"]
    with pytest.raises(GenerationError):
        parse_comments("oops", limit=3)


@pytest.mark.asyncio
async def test_initial_generation_caps_at_ten_turns():
    llm = ScriptedLLM([comments_json("A", "B", "C", prefix=f"b{i}-") for i in range(5)])
    generator = ConversationGenerator(llm, rng=random.Random(1))

    turns = await generator.generate_initial("商品情報")

    assert len(turns) == 10
    assert len(llm.calls) == 4
    stamps = [parse_timestamp(t.timestamp) for t in turns]
    assert all((b - a).total_seconds() == 1 for a, b in zip(stamps, stamps[1:]))
    assert "b0-0" in llm.calls[1]["prompt"]


@pytest.mark.asyncio
async def test_initial_generation_stops_on_empty_batch():
    llm = ScriptedLLM([comments_json("A", "B"), '{"comments": []}', comments_json("C")])
    turns = await ConversationGenerator(llm).generate_initial("商品情報")

    assert len(turns) == 2
    assert len(llm.calls) == 2


@pytest.mark.asyncio
async def test_initial_generation_handles_overshooting_batches():
    batches = [comments_json(*[f"s{j}" for j in range(3)], prefix=f"{i}-") for i in range(3)]
    batches.append(comments_json("x", "y", "z", prefix="last-"))
    llm = ScriptedLLM(batches)

    turns = await ConversationGenerator(llm).generate_initial("商品情報", target=10, cap=12)

    assert len(turns) == 10
    assert turns[-1].content == "last-0"


@pytest.mark.asyncio
async def test_append_renames_each_comment_freshly():
    llm = ScriptedLLM([comments_json("same", "same", "same")])
    turns = await ConversationGenerator(llm, rng=random.Random(4)).generate_append(["u「hi」"], "info")

    assert len(turns) == 3
    assert "same" not in {t.speaker_name for t in turns}
    assert len({t.speaker_name for t in turns}) == 3


@pytest.mark.asyncio
async def test_continuation_allows_up_to_ten_comments():
    llm = ScriptedLLM([comments_json(*[f"n{i}" for i in range(12)])])
    turns = await ConversationGenerator(llm).generate_continuation([], "info")
    assert len(turns) == 10


@pytest.mark.asyncio
async def test_comment_filter_runs_before_returning():
    llm = ScriptedLLM([comments_json("A", "B", "C")])
    generator = ConversationGenerator(llm, comment_filter=lambda turns: turns[:1])
    turns = await generator.generate_append([], "info")
    assert len(turns) == 1


@pytest.mark.asyncio
async def test_title_generator_uses_model_title():
    llm = ScriptedLLM(['{"title": "【話題】Acme X1 がヤバい"}'])
    title = await ThreadTitleGenerator(llm).generate(ProductAttributes(product_name="X1"))
    assert title == "【話題】Acme X1 がヤバい"


@pytest.mark.asyncio
async def test_title_generator_falls_back():
    product = ProductAttributes(product_name="X1", manufacturer="Acme", price="9,800円")
    for response in ['{"title": ""}', "nope", '{"title": "目玉商品が安い"}', RuntimeError("down")]:
        title = await ThreadTitleGenerator(ScriptedLLM([response]), rng=random.Random(0)).generate(product)
        assert title.startswith(TITLE_TAGS)
        assert title.endswith("Acme X1 が 9,800円 になってるんだがｗ")


def test_fallback_title_without_price():
    title = fallback_thread_title(ProductAttributes(product_name="X1"), random.Random(2))
    assert title.endswith("X1 がアツすぎる件")
