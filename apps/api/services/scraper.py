"""Static HTML product page fetching and text extraction."""

from __future__ import annotations

import base64
import logging
import re
from typing import Any, List, Optional
from urllib.parse import parse_qs, urlparse

import httpx
from bs4 import BeautifulSoup

from generation.models import ImagePart, ScrapeResult

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "ja,en-US;q=0.9,en;q=0.8",
}

NOISE_TAGS = ("script", "style", "nav", "header", "footer", "iframe", "noscript", "aside", "form", "svg")
NOISE_ROLES = ("navigation", "banner", "contentinfo", "complementary", "search")
CONTENT_TAGS = ["main", "article"]
NOISE_ATTR_RE = re.compile(
    r"(^|[-_\s])(ad|ads|advert|advertisement|sponsor|banner|sidebar|side-?rail|breadcrumbs?|"
    r"share|social|sns|cookie|consent|popup|modal|recommend|ranking|related)([-_\s]|$)",
    re.IGNORECASE,
)
DESCRIPTION_ATTR_RE = re.compile(
    r"(product[-_]?(description|detail|info|summary|spec)|item[-_]?(description|detail|caption|info)|"
    r"description|spec(ification)?s?|feature)",
    re.IGNORECASE,
)

TITLE_PREFIXES = (
    re.compile(r"^【楽天市場】\s*"),
    re.compile(r"^【楽天】\s*"),
    re.compile(r"^楽天市場\s*-\s*", re.IGNORECASE),
    re.compile(r"^Amazon \|\s*", re.IGNORECASE),
    re.compile(r"^Amazon\.co\.jp[：:]\s*", re.IGNORECASE),
    re.compile(r"^Yahoo!ショッピング\s*[-：]\s*", re.IGNORECASE),
    re.compile(r"^【ヤフオク!】\s*"),
)
TITLE_SUFFIXES = (
    re.compile(r"\s*-\s*楽天市場$"),
    re.compile(r"\s*-\s*楽天$"),
    re.compile(r"\s*\|\s*Amazon\.co\.jp$", re.IGNORECASE),
    re.compile(r"\s*-\s*Yahoo!ショッピング$", re.IGNORECASE),
)

RAKUTEN_AFFILIATE_HOST = "hb.afl.rakuten.co.jp"


class TitleFetchError(Exception):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def _attr_text(tag: Any) -> str:
    classes = tag.get("class") or []
    if isinstance(classes, str):
        classes = [classes]
    return " ".join([*classes, tag.get("id") or ""])


def unwrap_affiliate_url(url: str) -> str:
    """Return the real product URL hidden in a Rakuten affiliate link."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return url
    if parsed.hostname == RAKUTEN_AFFILIATE_HOST:
        target = parse_qs(parsed.query).get("pc")
        if target and target[0]:
            return target[0]
    return url


def clean_title(raw: str) -> str:
    title = raw.strip()
    for pattern in TITLE_PREFIXES:
        title = pattern.sub("", title)
    for pattern in TITLE_SUFFIXES:
        title = pattern.sub("", title)
    return title.strip()


def _wraps_content(tag: Any) -> bool:
    """True for layout wrappers (e.g. ``site-content has-sidebar``) around the main column."""
    if tag.find(CONTENT_TAGS) is not None:
        return True
    return any(DESCRIPTION_ATTR_RE.search(_attr_text(child)) for child in tag.find_all(True))


def _strip_structural_noise(soup: BeautifulSoup) -> None:
    for tag in soup(list(NOISE_TAGS)):
        tag.decompose()


def _remove_noise(soup: BeautifulSoup) -> None:
    for tag in soup.find_all(attrs={"role": True}):
        if str(tag.get("role", "")).lower() in NOISE_ROLES:
            tag.decompose()
    for tag in soup.find_all(True):
        if tag.decomposed or tag.name in ("html", "body"):
            continue
        if NOISE_ATTR_RE.search(_attr_text(tag)) and not _wraps_content(tag):
            tag.decompose()


def extract_page_content(html: str, max_chars: int = 8000) -> tuple[str, Optional[str]]:
    """Return (bounded visible text, og:image URL) for an HTML document."""
    soup = BeautifulSoup(html, "html.parser")

    og_tag = soup.find("meta", attrs={"property": "og:image"})
    og_image = (og_tag.get("content") or "").strip() if og_tag else ""

    description_tag = soup.find("meta", attrs={"name": "description"})
    meta_description = _collapse(description_tag.get("content") or "") if description_tag else ""

    _strip_structural_noise(soup)
    root = soup.body or soup
    fallback_text = _collapse(root.get_text(" "))
    _remove_noise(soup)

    parts: List[str] = []
    if meta_description:
        parts.append(meta_description)

    seen_blocks = set()
    for tag in soup.find_all(True):
        if tag.name in ("html", "body", "meta"):
            continue
        if not DESCRIPTION_ATTR_RE.search(_attr_text(tag)):
            continue
        block = _collapse(tag.get_text(" "))
        if not block or block in seen_blocks or any(block in existing for existing in seen_blocks):
            continue
        seen_blocks.add(block)
        parts.append(block)

    if not parts:
        body_text = _collapse(root.get_text(" ")) or fallback_text
        if body_text:
            parts.append(body_text)

    text = "\n\n".join(parts)
    if len(text) > max_chars:
        text = text[:max_chars] + "..."
    return text, og_image or None


class PageFetcher:
    """Fetch product pages with a browser-like client. Never raises from fetch()."""

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        max_chars: int = 8000,
        image_max_bytes: int = 4 * 1024 * 1024,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.max_chars = max_chars
        self.image_max_bytes = image_max_bytes
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=BROWSER_HEADERS,
            timeout=self.timeout_seconds,
            follow_redirects=True,
            transport=self._transport,
        )

    async def fetch(self, url: str) -> ScrapeResult:
        logger.info("Scraping %s", url)
        try:
            async with self._client() as client:
                response = await client.get(url)
            if not response.is_success:
                logger.warning("Scrape failed for %s: %s %s", url, response.status_code, response.reason_phrase)
                return ScrapeResult(ok=False, error=f"Status {response.status_code}")
            text, og_image = extract_page_content(response.text, self.max_chars)
        except Exception as exc:
            logger.warning("Scrape exception for %s: %s", url, exc)
            return ScrapeResult(ok=False, error=str(exc) or exc.__class__.__name__)
        logger.info("Scrape success for %s (length=%d)", url, len(text))
        return ScrapeResult(ok=True, text=text, og_image=og_image)

    async def fetch_image(self, url: Optional[str]) -> Optional[ImagePart]:
        """Download a preview image for multimodal prompts; None on any failure."""
        if not url:
            return None
        try:
            async with self._client() as client:
                response = await client.get(url)
            if not response.is_success:
                return None
            mime_type = response.headers.get("content-type", "").split(";", 1)[0].strip().lower()
            if not mime_type.startswith("image/"):
                return None
            if len(response.content) > self.image_max_bytes:
                logger.info("Skipping preview image %s (%d bytes)", url, len(response.content))
                return None
            return ImagePart(data=base64.b64encode(response.content).decode("ascii"), mime_type=mime_type)
        except Exception as exc:
            logger.warning("Preview image download failed for %s: %s", url, exc)
            return None

    async def fetch_title(self, url: str) -> str:
        target = unwrap_affiliate_url(url.strip())
        try:
            async with self._client() as client:
                response = await client.get(target)
        except httpx.TimeoutException as exc:
            raise TitleFetchError("タイムアウトしました。しばらくしてから再度お試しください。", 408) from exc
        except httpx.HTTPError as exc:
            raise TitleFetchError(str(exc) or "タイトルの取得に失敗しました。", 502) from exc

        if not response.is_success:
            raise TitleFetchError(f"ページの取得に失敗しました（HTTP {response.status_code}）", response.status_code)

        soup = BeautifulSoup(response.text, "html.parser")
        raw_title = soup.title.get_text() if soup.title else ""
        title = clean_title(_collapse(raw_title))
        if not title:
            raise TitleFetchError("ページからタイトルを取得できませんでした。", 404)
        return title


def build_page_fetcher(settings: Any) -> PageFetcher:
    return PageFetcher(
        timeout_seconds=settings.SCRAPE_TIMEOUT_SECONDS,
        max_chars=settings.SCRAPE_MAX_CHARS,
        image_max_bytes=settings.OG_IMAGE_MAX_BYTES,
    )
