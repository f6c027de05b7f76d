import base64

import httpx
import pytest

from services.rakuten import RakutenItemClient, is_rakuten_url
from services.scraper import (
    PageFetcher,
    TitleFetchError,
    clean_title,
    extract_page_content,
    unwrap_affiliate_url,
)


PRODUCT_HTML = """
<html>
<head>
  <title>【楽天市場】Acme X1 ワイヤレスイヤホン - 楽天市場</title>
  <meta name="description" content="  Acme X1   最新モデル  ">
  <meta property="og:image" content="https://cdn.example.com/x1.jpg">
  <script>var tracking = 1;</script>
</head>
<body>
  <nav>ホーム &gt; イヤホン</nav>
  <div class="ad-banner">広告です</div>
  <div class="breadcrumb">パンくず</div>
  <div class="product-description">ノイズキャンセリング搭載。30時間再生。</div>
  <div id="item-spec">Bluetooth 5.3</div>
  <footer>会社概要</footer>
</body>
</html>
"""


def _fetcher(handler, **kwargs) -> PageFetcher:
    return PageFetcher(transport=httpx.MockTransport(handler), **kwargs)


def test_extract_prefers_meta_and_description_blocks():
    text, og_image = extract_page_content(PRODUCT_HTML)

    assert og_image == "https://cdn.example.com/x1.jpg"
    assert text.startswith("Acme X1 最新モデル")
    assert "ノイズキャンセリング搭載。30時間再生。" in text
    assert "Bluetooth 5.3" in text
    assert "広告です" not in text
    assert "パンくず" not in text
    assert "tracking" not in text
    assert "\n\n" in text


def test_extract_falls_back_to_body_and_truncates():
    html = "<html><body><p>" + ("あ" * 50) + "</p><footer>foot</footer></body></html>"
    text, og_image = extract_page_content(html, max_chars=20)

    assert og_image is None
    assert text == "あ" * 20 + "..."


def test_extract_keeps_main_column_inside_sidebar_layout_wrapper():
    html = (
        '<div class="site-content has-sidebar"><main><h1>Widget</h1>'
        '<div class="product-description">Widget 9000, 20% off, 3000mAh</div></main>'
        '<aside class="sidebar">人気ランキング</aside><div class="ad-slot">広告</div></div>'
    )
    text, _ = extract_page_content(html)

    assert text == "Widget 9000, 20% off, 3000mAh"


def test_extract_uses_body_text_when_noise_wrapper_holds_everything():
    html = '<html><body><div class="sns-layout"><p>Widget 9000 3000mAh</p></div></body></html>'
    text, _ = extract_page_content(html)

    assert text == "Widget 9000 3000mAh"


@pytest.mark.asyncio
async def test_fetch_success_sends_browser_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["ua"] = request.headers.get("user-agent")
        seen["lang"] = request.headers.get("accept-language")
        return httpx.Response(200, text=PRODUCT_HTML)

    result = await _fetcher(handler).fetch("https://shop.example.com/x1")

    assert result.ok
    assert result.og_image == "https://cdn.example.com/x1.jpg"
    assert "Mozilla/5.0" in seen["ua"]
    assert seen["lang"].startswith("ja")


@pytest.mark.asyncio
async def test_fetch_non_2xx_is_a_failed_result():
    result = await _fetcher(lambda request: httpx.Response(403)).fetch("https://shop.example.com/x1")
    assert not result.ok
    assert result.error == "Status 403"


@pytest.mark.asyncio
async def test_fetch_exception_is_a_failed_result():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = await _fetcher(handler).fetch("https://shop.example.com/x1")
    assert not result.ok
    assert "connection refused" in result.error


@pytest.mark.asyncio
async def test_fetch_image_accepts_small_images_only():
    payload = b"\x89PNG fake"

    def handler(request):
        if request.url.path == "/big.png":
            return httpx.Response(200, content=b"x" * 100, headers={"content-type": "image/png"})
        if request.url.path == "/page.html":
            return httpx.Response(200, text="<html></html>", headers={"content-type": "text/html"})
        return httpx.Response(200, content=payload, headers={"content-type": "image/png; charset=binary"})

    fetcher = _fetcher(handler, image_max_bytes=50)

    image = await fetcher.fetch_image("https://cdn.example.com/x1.png")
    assert image.mime_type == "image/png"
    assert base64.b64decode(image.data) == payload
    assert await fetcher.fetch_image("https://cdn.example.com/big.png") is None
    assert await fetcher.fetch_image("https://cdn.example.com/page.html") is None
    assert await fetcher.fetch_image(None) is None


def test_unwrap_rakuten_affiliate_link():
    wrapped = "https://hb.afl.rakuten.co.jp/hgc/abc/?pc=https%3A%2F%2Fitem.rakuten.co.jp%2Fshop%2Fx1%2F&m=1"
    assert unwrap_affiliate_url(wrapped) == "https://item.rakuten.co.jp/shop/x1/"
    assert unwrap_affiliate_url("https://example.com/a") == "https://example.com/a"


def test_clean_title_strips_store_decorations():
    assert clean_title("【楽天市場】Acme X1 - 楽天市場") == "Acme X1"
    assert clean_title("Amazon.co.jp： Acme X1") == "Acme X1"


@pytest.mark.asyncio
async def test_fetch_title_unwraps_and_cleans():
    requested = []

    def handler(request):
        requested.append(str(request.url))
        return httpx.Response(200, text=PRODUCT_HTML)

    wrapped = "https://hb.afl.rakuten.co.jp/hgc/abc/?pc=https%3A%2F%2Fitem.rakuten.co.jp%2Fshop%2Fx1%2F"
    title = await _fetcher(handler).fetch_title(wrapped)

    assert title == "Acme X1 ワイヤレスイヤホン"
    assert requested == ["https://item.rakuten.co.jp/shop/x1/"]


@pytest.mark.asyncio
async def test_fetch_title_error_statuses():
    def timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(TitleFetchError) as timed_out:
        await _fetcher(timeout).fetch_title("https://example.com")
    assert timed_out.value.status_code == 408

    with pytest.raises(TitleFetchError) as upstream:
        await _fetcher(lambda request: httpx.Response(503)).fetch_title("https://example.com")
    assert upstream.value.status_code == 503

    with pytest.raises(TitleFetchError) as missing:
        await _fetcher(lambda request: httpx.Response(200, text="<html><body>x</body></html>")).fetch_title(
            "https://example.com"
        )
    assert missing.value.status_code == 404


@pytest.mark.asyncio
async def test_rakuten_lookup_formats_item_details():
    def handler(request):
        assert request.url.host == "openapi.rakuten.co.jp"
        assert request.url.params["itemCode"] == "shop:x1"
        return httpx.Response(200, json={
            "Items": [{"Item": {
                "itemName": "Acme X1",
                "catchcopy": "今だけ",
                "itemCaption": "高音質",
                "itemPrice": 12800,
            }}]
        })

    client = RakutenItemClient("app", "key", transport=httpx.MockTransport(handler))
    details = await client.get_item_details("https://item.rakuten.co.jp/shop/x1/")

    assert details == "Acme X1\n\n今だけ\n\n高音質\n\n価格: 12800円"


@pytest.mark.asyncio
async def test_rakuten_lookup_fails_soft():
    disabled = RakutenItemClient("", "")
    assert await disabled.get_item_details("https://item.rakuten.co.jp/shop/x1/") == ""

    client = RakutenItemClient("app", "key", transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    assert await client.get_item_details("https://item.rakuten.co.jp/shop/x1/") == ""
    assert is_rakuten_url("https://r10.to/abc")
    assert not is_rakuten_url("https://example.com")
