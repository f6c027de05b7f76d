"""Rakuten Ichiba item lookup used to enrich scraped product text."""

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional

import httpx

from services.scraper import BROWSER_HEADERS, RAKUTEN_AFFILIATE_HOST, unwrap_affiliate_url

logger = logging.getLogger(__name__)

RAKUTEN_ITEM_URL_RE = re.compile(r"item\.rakuten\.co\.jp/([^/]+)/([^/?#]+)")
RAKUTEN_ITEM_SEARCH_URL = "https://openapi.rakuten.co.jp/ichibams/api/IchibaItem/Search/20220601"


class RakutenItemClient:
    """Exact item-code lookups against the Ichiba item search API."""

    def __init__(
        self,
        app_id: str,
        access_key: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.app_id = (app_id or "").strip()
        self.access_key = (access_key or "").strip()
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.app_id and self.access_key)

    async def _canonical_url(self, client: httpx.AsyncClient, url: str) -> str:
        unwrapped = unwrap_affiliate_url(url)
        if unwrapped != url or RAKUTEN_ITEM_URL_RE.search(url):
            return unwrapped
        try:
            response = await client.head(url)
            return str(response.url)
        except httpx.HTTPError:
            return url

    async def get_item_details(self, url: Optional[str]) -> str:
        """Return name/catch copy/caption/price text for a Rakuten item URL, or ""."""
        if not url or not url.strip() or not self.enabled:
            return ""
        trimmed = url.strip()
        try:
            async with httpx.AsyncClient(
                headers=BROWSER_HEADERS,
                timeout=self.timeout_seconds,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                canonical = await self._canonical_url(client, trimmed)
                match = RAKUTEN_ITEM_URL_RE.search(canonical)
                if not match:
                    return ""
                response = await client.get(
                    RAKUTEN_ITEM_SEARCH_URL,
                    params={
                        "format": "json",
                        "itemCode": f"{match.group(1)}:{match.group(2)}",
                        "applicationId": self.app_id,
                        "accessKey": self.access_key,
                    },
                )
            if not response.is_success:
                logger.warning("Rakuten API error: %s %s", response.status_code, response.text[:300])
                return ""
            payload: Any = response.json()
        except Exception as exc:
            logger.warning("Rakuten item lookup failed for %s: %s", trimmed, exc)
            return ""

        items = payload.get("Items") if isinstance(payload, dict) else None
        if not items:
            return ""
        first = items[0]
        item = first.get("Item", first) if isinstance(first, dict) else None
        if not isinstance(item, dict):
            return ""

        parts: List[str] = []
        for key in ("itemName", "catchcopy", "itemCaption"):
            value = str(item.get(key) or "").strip()
            if value:
                parts.append(value)
        if item.get("itemPrice") is not None:
            parts.append(f"価格: {item['itemPrice']}円")
        return "\n\n".join(parts).strip()


def is_rakuten_url(url: Optional[str]) -> bool:
    text = url or ""
    return RAKUTEN_AFFILIATE_HOST in text or "rakuten.co.jp" in text or "r10.to/" in text


def build_rakuten_client(settings: Any) -> RakutenItemClient:
    return RakutenItemClient(
        app_id=settings.RAKUTEN_APP_ID,
        access_key=settings.RAKUTEN_ACCESS_KEY,
        timeout_seconds=settings.SCRAPE_TIMEOUT_SECONDS,
    )
