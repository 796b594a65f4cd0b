"""Unit tests for URL candidate generation, storage and checking."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from restock.fetcher.http_client import AsyncHTTPClient
from restock.models.config import ServiceConfig
from restock.models.data_models import CandidateEvaluation, CandidateInput, CandidateStatus, UrlCandidate
from restock.urls.checker import (
    UrlCandidateChecker,
    build_reason,
    evaluate_html,
    is_live_allowed,
    is_search_url,
)
from restock.urls.generator import UrlCandidateGenerator, build_candidates
from restock.urls.store import InMemoryCandidateStore
from tests.fixtures.factories import FakeClock, SleepRecorder
from tests.fixtures.sample_data import BLOCK_PAGE_HTML, SEARCH_RESULTS_PAGE_HTML, product_page_html

PRODUCT_URL = "https://www.target.com/p/pokemon-151-booster-bundle/-/A-88897899"
SEARCH_URL = "https://www.target.com/s?searchTerm=pokemon+151"
GONE_URL = "https://www.target.com/p/retired-tin/-/A-1"


class FailingStore(InMemoryCandidateStore):
    async def upsert_candidates(self, *args, **kwargs):
        raise ConnectionError("database unavailable")

    async def fetch_pending(self, limit):
        raise ConnectionError("database unavailable")


def evaluation(product_page=True, price=True, cta=True, jsonld=True):
    return CandidateEvaluation(product_page=product_page, price=price, cta=cta, jsonld=jsonld)


class TestGenerator:

    def test_best_buy_sku_path_ranks_first(self):
        candidates = build_candidates(CandidateInput(
            product_id="p-151", retailer_slug="best-buy", sku="6545227", upc="820650853425",
            name="Scarlet & Violet 151 Booster Bundle",
        ))

        top = candidates[0]
        assert top.url == "https://www.bestbuy.com/site/scarlet-violet-151-booster-bundle/6545227.p"
        assert top.score == 0.92
        assert top.pattern_id == "bb:sku"
        assert [c.score for c in candidates] == sorted((c.score for c in candidates), reverse=True)
        assert any(c.reason == "search-upc" for c in candidates)

    def test_target_variant_drops_generic_words(self):
        candidates = build_candidates(CandidateInput(
            product_id="p-151", retailer_slug="target", name="Pokemon TCG 151 Booster Bundle",
        ))

        urls = {c.reason: c.url for c in candidates}
        assert urls["search-slug"] == "https://www.target.com/s?searchTerm=pokemon+tcg+151+booster+bundle"
        assert urls["search-variant"] == "https://www.target.com/s?searchTerm=151+booster+bundle"

    def test_walmart_short_query_is_truncated(self):
        candidates = build_candidates(CandidateInput(
            product_id="p-1", retailer_slug="walmart",
            name="Pokemon TCG Scarlet Violet Paldean Fates Elite Trainer Box",
        ))

        short = next(c for c in candidates if c.reason == "search-short")
        assert short.url == "https://www.walmart.com/search?q=pokemon+tcg+scarlet+violet+paldean"

    def test_unknown_retailer_and_empty_input_yield_nothing(self):
        assert build_candidates(CandidateInput(product_id="p", retailer_slug="kmart", name="x")) == []
        assert build_candidates(CandidateInput(product_id="p", retailer_slug="best-buy")) == []

    @pytest.mark.asyncio
    async def test_generate_persists_with_mapped_retailer_id(self):
        store = InMemoryCandidateStore()
        generator = UrlCandidateGenerator(store, retailer_ids={"best-buy": "bestbuy-us"})

        candidates = await generator.generate(
            CandidateInput(product_id="p-151", retailer_slug="best-buy", sku="6545227")
        )

        records = store.records()
        assert len(records) == len(candidates)
        assert {r.retailer_id for r in records} == {"bestbuy-us"}
        assert {r.retailer_slug for r in records} == {"best-buy"}

    @pytest.mark.asyncio
    async def test_persistence_failure_still_returns_candidates(self):
        generator = UrlCandidateGenerator(FailingStore())

        candidates = await generator.generate(
            CandidateInput(product_id="p-151", retailer_slug="target", upc="820650853425")
        )

        assert [c.reason for c in candidates] == ["search-upc"]


class TestInMemoryStore:

    @pytest.mark.asyncio
    async def test_upsert_keeps_checked_status(self):
        store = InMemoryCandidateStore()
        candidate = UrlCandidate(PRODUCT_URL, 0.6, "tcin", "tg:pdp")
        await store.upsert_candidates("p-151", "target", "target", [candidate])
        record = store.records()[0]
        await store.update_status(record, CandidateStatus.LIVE, 0.85, "live", datetime.now(timezone.utc))

        await store.upsert_candidates("p-151", "target", "target", [UrlCandidate(PRODUCT_URL, 0.1, "x", "tg:new")])

        records = store.records()
        assert len(records) == 1
        assert records[0].status == CandidateStatus.LIVE
        assert records[0].score == 0.85
        assert records[0].pattern_id == "tg:new"

    @pytest.mark.asyncio
    async def test_fetch_pending_orders_unchecked_then_oldest(self):
        store = InMemoryCandidateStore()
        await store.upsert_candidates("p", "target", "target", [
            UrlCandidate("https://www.target.com/p/a/-/A-1", 0.5, "a", "a"),
            UrlCandidate("https://www.target.com/p/b/-/A-2", 0.5, "b", "b"),
            UrlCandidate("https://www.target.com/p/c/-/A-3", 0.5, "c", "c"),
        ])
        a, b, c = store.records()
        checked = datetime.now(timezone.utc)
        await store.update_status(a, CandidateStatus.VALID, 0.5, "", checked)
        await store.update_status(b, CandidateStatus.VALID, 0.5, "", checked - timedelta(hours=1))

        pending = await store.fetch_pending(10)

        assert [r.url for r in pending] == [c.url, b.url, a.url]

    @pytest.mark.asyncio
    async def test_invalid_candidates_are_not_pending(self):
        store = InMemoryCandidateStore()
        await store.upsert_candidates("p", "target", "target", [UrlCandidate(GONE_URL, 0.5, "a", "a")])
        await store.update_status(store.records()[0], CandidateStatus.INVALID, 0.2, "", datetime.now(timezone.utc))

        assert await store.fetch_pending(10) == []

    @pytest.mark.asyncio
    async def test_live_url_is_highest_score(self):
        store = InMemoryCandidateStore()
        await store.upsert_candidates("p", "target", "target", [
            UrlCandidate("https://www.target.com/p/a/-/A-1", 0.5, "a", "a"),
            UrlCandidate("https://www.target.com/p/b/-/A-2", 0.5, "b", "b"),
        ])
        a, b = store.records()
        now = datetime.now(timezone.utc)
        await store.update_status(a, CandidateStatus.LIVE, 0.7, "", now)
        await store.update_status(b, CandidateStatus.LIVE, 0.9, "", now)

        assert await store.get_live_url("p", "target") == b.url
        assert await store.get_live_url("p", "walmart") is None


class TestEvaluation:

    @pytest.mark.parametrize("url,expected", [
        ("https://www.target.com/s?searchTerm=pokemon", True),
        ("https://www.samsclub.com/s/pokemon", True),
        ("https://www.bestbuy.com/site/searchpage.jsp?st=6545227", True),
        ("https://www.costco.com/CatalogSearch?dept=All&keyword=pokemon", True),
        ("https://www.walmart.com/search?q=pokemon", True),
        ("https://www.walmart.com/ip/556789012", False),
        ("https://www.bestbuy.com/site/x/6545227.p?skuId=6545227", False),
    ])
    def test_is_search_url(self, url, expected):
        assert is_search_url(url) is expected

    def test_product_page_signals(self):
        result = evaluate_html(PRODUCT_URL, product_page_html())

        assert result.product_page is True
        assert result.price is True
        assert result.cta is True
        assert result.jsonld is True
        assert "jsonld_product" in result.signals

    def test_search_page_is_never_a_product_page(self):
        result = evaluate_html(SEARCH_URL, product_page_html())
        assert result.product_page is False

    def test_host_rule_rejects_non_product_paths(self):
        result = evaluate_html("https://www.target.com/c/trading-cards", product_page_html())
        assert result.product_page is False

    def test_unknown_host_falls_back_to_markup(self):
        og_page = '<html><head><meta property="og:type" content="product"></head><body>$4.99</body></html>'

        assert evaluate_html("https://shop.example.com/item/1", product_page_html()).product_page is True
        assert evaluate_html("https://shop.example.com/item/1", og_page).product_page is True
        assert evaluate_html("https://shop.example.com/item/1", "<html><body>hi</body></html>").product_page is False

    def test_out_of_stock_text_is_not_a_cta(self):
        result = evaluate_html(PRODUCT_URL, "<html><body>Sold out. Available soon. $26.94</body></html>")
        assert result.cta is False

    def test_live_rules(self):
        no_cta = evaluation(cta=False)

        assert is_live_allowed("best-buy", evaluation()) is True
        assert is_live_allowed("best-buy", no_cta) is False
        assert is_live_allowed("target", no_cta, {"target": "jsonld"}) is True
        assert is_live_allowed("target", evaluation(jsonld=False), {"target": "jsonld"}) is False
        assert is_live_allowed("walmart", evaluation(price=False)) is False

    def test_build_reason(self):
        assert build_reason("valid", evaluation(cta=False, jsonld=False)) == "valid:pg=1,cta=0,price=1,jsonld=0"


class TestChecker:

    @staticmethod
    async def seeded_store(*candidates):
        store = InMemoryCandidateStore()
        await store.upsert_candidates("p-151", "target", "target", list(candidates))
        return store

    @staticmethod
    def checker(store, handler, **kwargs):
        client = AsyncHTTPClient(transport=httpx.MockTransport(handler))
        kwargs.setdefault("sleeper", SleepRecorder())
        return UrlCandidateChecker(store, client, **kwargs), client

    @pytest.mark.asyncio
    async def test_batch_transitions_and_scores(self):
        store = await self.seeded_store(
            UrlCandidate(PRODUCT_URL, 0.60, "tcin", "tg:pdp"),
            UrlCandidate(SEARCH_URL, 0.52, "search-slug", "tg:search"),
            UrlCandidate(GONE_URL, 0.62, "tcin", "tg:pdp"),
        )
        pages = {PRODUCT_URL: product_page_html(), SEARCH_URL: SEARCH_RESULTS_PAGE_HTML}

        def handler(request):
            url = str(request.url)
            if url in pages:
                return httpx.Response(200, text=pages[url])
            return httpx.Response(404)

        checker, client = self.checker(store, handler)
        async with client:
            assert await checker.check_batch() == (3, 1)

        by_url = {r.url: r for r in store.records()}
        live, valid, invalid = by_url[PRODUCT_URL], by_url[SEARCH_URL], by_url[GONE_URL]
        assert live.status == CandidateStatus.LIVE
        assert live.score == pytest.approx(0.85)
        assert live.reason == "live:pg=1,cta=1,price=1,jsonld=1"
        assert valid.status == CandidateStatus.VALID
        assert valid.score == pytest.approx(0.57)
        assert valid.reason.startswith("valid:pg=0")
        assert invalid.status == CandidateStatus.INVALID
        assert invalid.score == pytest.approx(0.32)
        assert invalid.reason == "http_404"
        assert all(r.last_checked_at is not None for r in store.records())
        assert checker.metrics["target"]["requests"] == 3
        assert checker.metrics["target"]["live"] == 1

    @pytest.mark.asyncio
    async def test_timeout_and_network_errors_stay_unknown(self):
        store = await self.seeded_store(
            UrlCandidate(PRODUCT_URL, 0.60, "tcin", "tg:pdp"),
            UrlCandidate(GONE_URL, 0.60, "tcin", "tg:pdp"),
        )

        def handler(request):
            if str(request.url) == PRODUCT_URL:
                raise httpx.ReadTimeout("slow", request=request)
            raise httpx.ConnectError("refused", request=request)

        checker, client = self.checker(store, handler)
        async with client:
            assert await checker.check_batch() == (2, 0)

        by_url = {r.url: r for r in store.records()}
        assert by_url[PRODUCT_URL].status == CandidateStatus.UNKNOWN
        assert by_url[PRODUCT_URL].reason == "timeout"
        assert by_url[PRODUCT_URL].score == pytest.approx(0.55)
        assert by_url[GONE_URL].reason == "network:ConnectError"
        assert checker.metrics["target"]["errors"] == 2

    @pytest.mark.asyncio
    async def test_block_responses_are_counted(self):
        store = await self.seeded_store(
            UrlCandidate(PRODUCT_URL, 0.60, "tcin", "tg:pdp"),
            UrlCandidate(GONE_URL, 0.60, "tcin", "tg:pdp"),
        )

        def handler(request):
            if str(request.url) == PRODUCT_URL:
                return httpx.Response(403, text=BLOCK_PAGE_HTML)
            return httpx.Response(200, text=BLOCK_PAGE_HTML)

        checker, client = self.checker(store, handler)
        async with client:
            await checker.check_batch()

        by_url = {r.url: r for r in store.records()}
        assert by_url[PRODUCT_URL].status == CandidateStatus.UNKNOWN
        assert by_url[PRODUCT_URL].reason == "http_403"
        assert by_url[GONE_URL].status == CandidateStatus.VALID
        assert checker.metrics["target"]["blocked"] == 2

    @pytest.mark.asyncio
    async def test_per_retailer_budget_skips_extra_candidates(self):
        store = await self.seeded_store(
            UrlCandidate(PRODUCT_URL, 0.60, "tcin", "tg:pdp"),
            UrlCandidate(GONE_URL, 0.60, "tcin", "tg:pdp"),
        )
        clock = FakeClock()

        checker, client = self.checker(
            store, lambda request: httpx.Response(404), qpm=1, now=clock
        )
        async with client:
            assert await checker.check_batch() == (1, 0)
            assert await checker.check_batch() == (0, 0)
            clock.advance(60.0)
            assert await checker.check_batch() == (1, 0)

        assert all(r.last_checked_at is not None for r in store.records())

    @pytest.mark.asyncio
    async def test_paces_between_checks(self):
        store = await self.seeded_store(
            UrlCandidate(PRODUCT_URL, 0.60, "tcin", "tg:pdp"),
            UrlCandidate(GONE_URL, 0.60, "tcin", "tg:pdp"),
        )
        sleeper = SleepRecorder()

        checker, client = self.checker(store, lambda request: httpx.Response(404), sleeper=sleeper, pacing=0.5)
        async with client:
            await checker.check_batch()

        assert sleeper.calls == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_store_failure_returns_zero_counts(self):
        checker, client = self.checker(FailingStore(), lambda request: httpx.Response(200))
        async with client:
            assert await checker.check_batch() == (0, 0)

    def test_default_live_rule_overrides(self):
        checker = UrlCandidateChecker(InMemoryCandidateStore(), AsyncHTTPClient())
        assert checker.live_rule_overrides == {"target": "jsonld"}

    @pytest.mark.asyncio
    async def test_from_config_uses_candidate_settings(self):
        config = ServiceConfig(
            retailers=[],
            candidate_qpm=3,
            candidate_timeout=2.5,
            candidate_pacing=0.1,
            candidate_batch_limit=1,
            live_rule_overrides={"walmart": "jsonld"},
        )
        store = await self.seeded_store(
            UrlCandidate(PRODUCT_URL, 0.60, "tcin", "tg:pdp"),
            UrlCandidate(GONE_URL, 0.60, "tcin", "tg:pdp"),
        )
        sleeper = SleepRecorder()
        client = AsyncHTTPClient(transport=httpx.MockTransport(lambda request: httpx.Response(404)))

        checker = UrlCandidateChecker.from_config(config, store, client, sleeper=sleeper)
        async with client:
            assert await checker.check_batch() == (1, 0)

        assert (checker.qpm, checker.timeout, checker.batch_limit) == (3, 2.5, 1)
        assert checker.live_rule_overrides == {"walmart": "jsonld"}
        assert sleeper.calls == [0.1]
