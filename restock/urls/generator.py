"""Deterministic product URL candidates per retailer."""

from typing import Callable, Dict, List, Optional
from urllib.parse import quote_plus

from restock.models.data_models import CandidateInput, UrlCandidate
from restock.monitoring.logger import StructuredLogger
from restock.processor.normalizer import slugify
from restock.urls.store import CandidateStore

GENERIC_WORDS = {"pokemon", "tcg", "trading", "card", "game"}
SHORT_QUERY_WORDS = 5


def _product_slug(candidate_input: CandidateInput) -> str:
    return slugify(f"{candidate_input.name or ''} {candidate_input.set_name or ''}")


def _query(words: List[str]) -> str:
    return quote_plus(" ".join(words))


def _best_buy(c: CandidateInput) -> List[UrlCandidate]:
    out = []
    slug = _product_slug(c)
    if c.sku:
        path_slug = slug or "product"
        sku = quote_plus(c.sku)
        out.append(UrlCandidate(f"https://www.bestbuy.com/site/{path_slug}/{sku}.p", 0.92, "sku-path", "bb:sku"))
        out.append(UrlCandidate(
            f"https://www.bestbuy.com/site/{path_slug}/{sku}.p?skuId={sku}", 0.90, "sku-path+query", "bb:sku"
        ))
        out.append(UrlCandidate(f"https://www.bestbuy.com/site/searchpage.jsp?st={sku}", 0.60, "search-sku", "bb:search"))
        out.append(UrlCandidate(f"https://api.bestbuy.com/v1/products/{sku}.json", 0.50, "api-sku", "bb:api"))
    if c.upc:
        out.append(UrlCandidate(
            f"https://www.bestbuy.com/site/searchpage.jsp?st={quote_plus(c.upc)}", 0.55, "search-upc", "bb:search"
        ))
    if slug:
        out.append(UrlCandidate(
            f"https://www.bestbuy.com/site/searchpage.jsp?st={_query(slug.split('-'))}", 0.48, "search-slug", "bb:search"
        ))
    return out


def _walmart(c: CandidateInput) -> List[UrlCandidate]:
    out = []
    slug = _product_slug(c)
    if c.upc:
        out.append(UrlCandidate(f"https://www.walmart.com/search?q={quote_plus(c.upc)}", 0.57, "search-upc", "wm:search"))
    if slug:
        words = slug.split("-")
        out.append(UrlCandidate(f"https://www.walmart.com/search?q={_query(words)}", 0.47, "search-slug", "wm:search"))
        out.append(UrlCandidate(
            f"https://www.walmart.com/search?q={_query(words[:SHORT_QUERY_WORDS])}", 0.43, "search-short", "wm:search"
        ))
    return out


def _target(c: CandidateInput) -> List[UrlCandidate]:
    out = []
    slug = _product_slug(c)
    if c.upc:
        out.append(UrlCandidate(
            f"https://www.target.com/s?searchTerm={quote_plus(c.upc)}", 0.62, "search-upc", "tg:search"
        ))
    if slug:
        words = slug.split("-")
        out.append(UrlCandidate(
            f"https://www.target.com/s?searchTerm={_query(words)}", 0.52, "search-slug", "tg:search"
        ))
        variant = [w for w in words if w not in GENERIC_WORDS]
        if variant:
            out.append(UrlCandidate(
                f"https://www.target.com/s?searchTerm={_query(variant)}", 0.46, "search-variant", "tg:search"
            ))
    return out


def _costco(c: CandidateInput) -> List[UrlCandidate]:
    slug = _product_slug(c)
    if not slug:
        return []
    return [UrlCandidate(
        f"https://www.costco.com/CatalogSearch?dept=All&keyword={_query(slug.split('-'))}", 0.40, "search-slug", "cs:search"
    )]


def _sams_club(c: CandidateInput) -> List[UrlCandidate]:
    slug = _product_slug(c)
    if not slug:
        return []
    return [UrlCandidate(f"https://www.samsclub.com/s/{_query(slug.split('-'))}", 0.40, "search-slug", "sc:search")]


PATTERNS: Dict[str, Callable[[CandidateInput], List[UrlCandidate]]] = {
    "best-buy": _best_buy,
    "walmart": _walmart,
    "target": _target,
    "costco": _costco,
    "sams-club": _sams_club,
}


def build_candidates(candidate_input: CandidateInput) -> List[UrlCandidate]:
    """Candidates for one product at one retailer, best score first. Unknown slugs yield []."""
    pattern = PATTERNS.get(candidate_input.retailer_slug)
    if pattern is None:
        return []
    candidates = pattern(candidate_input)
    return sorted(candidates, key=lambda c: c.score, reverse=True)


class UrlCandidateGenerator:
    """Generates candidates and records them in a candidate store when one is set."""

    def __init__(
        self,
        store: Optional[CandidateStore] = None,
        retailer_ids: Optional[Dict[str, str]] = None,
        logger: Optional[StructuredLogger] = None
    ):
        """
        Args:
            store: Optional persistence for generated candidates
            retailer_ids: Map of retailer slug to retailer id, identity by default
            logger: Structured logger for persistence failures
        """
        self.store = store
        self.retailer_ids = retailer_ids or {}
        self.logger = logger or StructuredLogger()

    async def generate(self, candidate_input: CandidateInput) -> List[UrlCandidate]:
        candidates = build_candidates(candidate_input)
        if self.store is None or not candidates:
            return candidates

        slug = candidate_input.retailer_slug
        try:
            await self.store.upsert_candidates(
                candidate_input.product_id,
                self.retailer_ids.get(slug, slug),
                slug,
                candidates,
            )
        except Exception as e:
            # Candidates are still returned when persistence fails
            self.logger.warning(
                "candidate_persist_failed",
                retailer=slug,
                product_id=candidate_input.product_id,
                error=str(e),
            )
        return candidates
