"""Candidate URL storage contract and an in-memory implementation."""

from datetime import datetime
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from restock.models.data_models import CandidateRecord, CandidateStatus, UrlCandidate


class CandidateStore(Protocol):
    """Persistence boundary for URL candidates, supplied by collaborators."""

    async def upsert_candidates(
        self,
        product_id: str,
        retailer_id: str,
        retailer_slug: str,
        candidates: Sequence[UrlCandidate]
    ) -> None:
        ...

    async def fetch_pending(self, limit: int) -> List[CandidateRecord]:
        """Candidates in unknown/valid status, least recently checked first."""
        ...

    async def update_status(
        self,
        record: CandidateRecord,
        status: CandidateStatus,
        score: float,
        reason: str,
        checked_at: datetime
    ) -> None:
        ...

    async def get_live_url(self, product_id: str, retailer_id: str) -> Optional[str]:
        """Highest scoring live URL for a product at a retailer, if any."""
        ...


class InMemoryCandidateStore:
    """Dict-backed CandidateStore for tests and single-process use."""

    def __init__(self):
        self._records: Dict[Tuple[str, str, str], CandidateRecord] = {}
        self._next_id = 1

    async def upsert_candidates(
        self,
        product_id: str,
        retailer_id: str,
        retailer_slug: str,
        candidates: Sequence[UrlCandidate]
    ) -> None:
        for candidate in candidates:
            key = (product_id, retailer_id, candidate.url)
            existing = self._records.get(key)
            if existing is not None:
                # Keep status history, refresh generator metadata
                existing.pattern_id = candidate.pattern_id
                if existing.status == CandidateStatus.UNKNOWN:
                    existing.score = candidate.score
                    existing.reason = candidate.reason
                continue
            self._records[key] = CandidateRecord(
                id=self._next_id,
                product_id=product_id,
                retailer_id=retailer_id,
                retailer_slug=retailer_slug,
                url=candidate.url,
                score=candidate.score,
                reason=candidate.reason,
                pattern_id=candidate.pattern_id,
            )
            self._next_id += 1

    async def fetch_pending(self, limit: int) -> List[CandidateRecord]:
        pending = [
            r for r in self._records.values()
            if r.status in (CandidateStatus.UNKNOWN, CandidateStatus.VALID)
        ]
        # Never-checked first, then oldest check
        pending.sort(key=lambda r: (r.last_checked_at is not None, r.last_checked_at or datetime.min, r.id))
        return pending[:limit]

    async def update_status(
        self,
        record: CandidateRecord,
        status: CandidateStatus,
        score: float,
        reason: str,
        checked_at: datetime
    ) -> None:
        stored = self._records[(record.product_id, record.retailer_id, record.url)]
        stored.status = status
        stored.score = score
        stored.reason = reason
        stored.last_checked_at = checked_at

    async def get_live_url(self, product_id: str, retailer_id: str) -> Optional[str]:
        live = [
            r for r in self._records.values()
            if r.product_id == product_id
            and r.retailer_id == retailer_id
            and r.status == CandidateStatus.LIVE
        ]
        if not live:
            return None
        return max(live, key=lambda r: r.score).url

    def records(self) -> List[CandidateRecord]:
        return list(self._records.values())
