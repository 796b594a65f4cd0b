"""Candidate URL verification.

Fetches stored candidates, decides from the page whether each one is a live
product page, and moves it through unknown/valid/invalid/live with a
score adjustment per outcome.
"""

import asyncio
import re
import time
from collections import Counter
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from urllib.parse import parse_qs, urlsplit

import httpx
from bs4 import BeautifulSoup

from restock.fetcher.http_client import AsyncHTTPClient
from restock.models.config import ServiceConfig
from restock.models.data_models import CandidateEvaluation, CandidateRecord, CandidateStatus, utc_now
from restock.monitoring.logger import StructuredLogger
from restock.retailers.extraction import iter_json_ld
from restock.urls.store import CandidateStore

CTA_PATTERN = re.compile(r"(add to cart|buy now|ship it|pickup|add to basket)", re.IGNORECASE)
IN_STOCK_PATTERN = re.compile(r"(in stock|available|ready to ship)", re.IGNORECASE)
OUT_OF_STOCK_PATTERN = re.compile(r"(out of stock|sold out|unavailable)", re.IGNORECASE)
PRICE_PATTERN = re.compile(r"\$\s*\d{1,3}(?:,\d{3})*(?:\.\d{2})?")
BLOCK_PATTERN = re.compile(
    r"(incapsula|captcha|access denied|request unsuccessful|are you a robot|proxy authentication)",
    re.IGNORECASE,
)

SEARCH_QUERY_KEYS = {"searchterm", "q", "st", "keyword", "k", "query"}
SEARCH_PATH_SEGMENTS = {"search", "catalogsearch", "searchpage.jsp"}
BLOCK_STATUSES = {403, 407, 429}

HOST_RULES = (
    ("target.com", lambda path: "/p/" in path),
    ("bestbuy.com", lambda path: "/site/" in path and path.endswith(".p")),
    ("walmart.com", lambda path: "/ip/" in path),
    ("costco.com", lambda path: "product." in path.lower()),
    ("samsclub.com", lambda path: "/p/" in path),
)

LIVE_BONUS = 0.25
VALID_BONUS = 0.05
INVALID_PENALTY = 0.30
UNKNOWN_PENALTY = 0.05
ERROR_PENALTY = 0.02


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def is_search_url(url: str) -> bool:
    """Search and listing URLs are never product pages."""
    parts = urlsplit(url)
    segments = parts.path.lower().strip("/").split("/")
    if segments[0] == "s" or any(segment in SEARCH_PATH_SEGMENTS for segment in segments):
        return True
    query_keys = {key.lower() for key in parse_qs(parts.query)}
    return bool(query_keys & SEARCH_QUERY_KEYS)


def _jsonld_product_with_offer(soup: BeautifulSoup) -> bool:
    for item in iter_json_ld(soup):
        kind = item.get("@type") or item.get("type") or ""
        if "product" not in str(kind).lower():
            continue
        offers = item.get("offers") or item.get("offer") or {}
        if isinstance(offers, list):
            offers = offers[0] if offers else {}
        if not isinstance(offers, dict):
            offers = {}
        if (
            offers.get("price") or offers.get("lowPrice") or offers.get("highPrice")
            or item.get("price") or item.get("sku") or item.get("gtin12") or item.get("gtin13")
        ):
            return True
    return False


def _has_product_markup(soup: BeautifulSoup) -> bool:
    for item in iter_json_ld(soup):
        if "product" in str(item.get("@type", "")).lower():
            return True
    og_type = soup.find("meta", attrs={"property": "og:type"})
    return og_type is not None and "product" in (og_type.get("content") or "").lower()


def is_likely_product_page(url: str, soup: BeautifulSoup) -> bool:
    if is_search_url(url):
        return False
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    for domain, rule in HOST_RULES:
        if host == domain or host.endswith("." + domain):
            return rule(parts.path)
    return _has_product_markup(soup)


def evaluate_html(url: str, html: str) -> CandidateEvaluation:
    """Extract product-page signals from a fetched candidate."""
    soup = BeautifulSoup(html, "html.parser")
    body = soup.body or soup
    text = body.get_text(" ", strip=True)

    cta = CTA_PATTERN.search(text) is not None
    in_stock_text = IN_STOCK_PATTERN.search(text) is not None and OUT_OF_STOCK_PATTERN.search(text) is None
    price = PRICE_PATTERN.search(text) is not None
    jsonld = _jsonld_product_with_offer(soup)

    signals = []
    if cta:
        signals.append("cta")
    if in_stock_text:
        signals.append("in_stock_text")
    if price:
        signals.append("price_seen")
    if jsonld:
        signals.append("jsonld_product")

    return CandidateEvaluation(
        product_page=is_likely_product_page(url, soup),
        price=price,
        cta=cta or in_stock_text,
        jsonld=jsonld,
        signals=signals,
    )


def is_live_allowed(
    retailer_slug: Optional[str],
    evaluation: CandidateEvaluation,
    overrides: Optional[Dict[str, str]] = None
) -> bool:
    """
    Live rule: product page with price and CTA by default.

    A retailer overridden with ``"jsonld"`` accepts JSON-LD product data in
    place of the CTA, for storefronts that render their buttons client-side.
    """
    rule = (overrides or {}).get(retailer_slug or "", "cta")
    if rule == "jsonld":
        return evaluation.product_page and evaluation.jsonld and evaluation.price
    return evaluation.product_page and evaluation.cta and evaluation.price


def build_reason(prefix: str, evaluation: CandidateEvaluation) -> str:
    bits = [
        f"pg={int(evaluation.product_page)}",
        f"cta={int(evaluation.cta)}",
        f"price={int(evaluation.price)}",
        f"jsonld={int(evaluation.jsonld)}",
    ]
    return f"{prefix}:{','.join(bits)}"


class UrlCandidateChecker:
    """Batch verifier for stored URL candidates."""

    def __init__(
        self,
        store: CandidateStore,
        http_client: AsyncHTTPClient,
        qpm: int = 6,
        timeout: float = 8.0,
        pacing: float = 0.25,
        batch_limit: int = 25,
        live_rule_overrides: Optional[Dict[str, str]] = None,
        logger: Optional[StructuredLogger] = None,
        now: Callable[[], float] = time.monotonic,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.http_client = http_client
        self.qpm = qpm
        self.timeout = timeout
        self.pacing = pacing
        self.batch_limit = batch_limit
        self.live_rule_overrides = {"target": "jsonld"} if live_rule_overrides is None else live_rule_overrides
        self.logger = logger or StructuredLogger()
        self._now = now
        self._sleep = sleeper
        self._budgets: Dict[str, Tuple[float, int]] = {}
        self.metrics: Dict[str, Counter] = {}

    @classmethod
    def from_config(
        cls,
        config: ServiceConfig,
        store: CandidateStore,
        http_client: AsyncHTTPClient,
        **kwargs
    ) -> "UrlCandidateChecker":
        """Checker using the service's candidate budget, timeout, pacing and live rules."""
        return cls(
            store,
            http_client,
            qpm=config.candidate_qpm,
            timeout=config.candidate_timeout,
            pacing=config.candidate_pacing,
            batch_limit=config.candidate_batch_limit,
            live_rule_overrides=dict(config.live_rule_overrides),
            **kwargs
        )

    def _record(self, slug: str, counter: str) -> None:
        self.metrics.setdefault(slug, Counter())[counter] += 1

    def _consume_budget(self, slug: str) -> bool:
        current = self._now()
        window_start, count = self._budgets.get(slug, (current, 0))
        if current - window_start >= 60.0:
            window_start, count = current, 0
        if count >= self.qpm:
            self._budgets[slug] = (window_start, count)
            return False
        self._budgets[slug] = (window_start, count + 1)
        return True

    async def _check_one(self, record: CandidateRecord) -> Tuple[CandidateStatus, float, str]:
        slug = record.retailer_slug
        score = record.score
        try:
            response = await asyncio.wait_for(self.http_client.get(record.url), self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            self._record(slug, "errors")
            return CandidateStatus.UNKNOWN, clamp01(score - UNKNOWN_PENALTY), "timeout"
        except httpx.TransportError as e:
            self._record(slug, "errors")
            return CandidateStatus.UNKNOWN, clamp01(score - UNKNOWN_PENALTY), f"network:{type(e).__name__}"
        except httpx.HTTPError as e:
            self._record(slug, "errors")
            return CandidateStatus.UNKNOWN, clamp01(score - ERROR_PENALTY), f"error:{type(e).__name__}"

        status_code = response.status_code
        if status_code in BLOCK_STATUSES or BLOCK_PATTERN.search(response.text or ""):
            self._record(slug, "blocked")

        if 200 <= status_code < 300:
            evaluation = evaluate_html(record.url, response.text)
            if is_live_allowed(slug, evaluation, self.live_rule_overrides):
                self._record(slug, "live")
                return CandidateStatus.LIVE, clamp01(score + LIVE_BONUS), build_reason("live", evaluation)
            self._record(slug, "valid")
            return CandidateStatus.VALID, clamp01(score + VALID_BONUS), build_reason("valid", evaluation)

        if status_code in (404, 410):
            self._record(slug, "invalid")
            return CandidateStatus.INVALID, clamp01(score - INVALID_PENALTY), f"http_{status_code}"

        return CandidateStatus.UNKNOWN, clamp01(score - UNKNOWN_PENALTY), f"http_{status_code}"

    async def check_batch(self, limit: Optional[int] = None) -> Tuple[int, int]:
        """
        Check up to ``limit`` pending candidates, ``batch_limit`` by default.

        Returns:
            (checked, live_found); (0, 0) if the batch could not run
        """
        try:
            records = await self.store.fetch_pending(self.batch_limit if limit is None else limit)
            checked = 0
            live_found = 0
            for record in records:
                if not self._consume_budget(record.retailer_slug):
                    continue
                self._record(record.retailer_slug, "requests")

                status, score, reason = await self._check_one(record)
                await self.store.update_status(record, status, score, reason, utc_now())
                self.logger.candidate_checked(record.retailer_slug, record.url, status.value, score, reason)

                checked += 1
                if status == CandidateStatus.LIVE:
                    live_found += 1
                await self._sleep(self.pacing)
            return checked, live_found
        except Exception as e:
            self.logger.error("candidate_batch_failed", error=str(e))
            return 0, 0
