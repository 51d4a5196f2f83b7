"""
Feed assembly: ranked terms → search collaborator, trending as fall-back.

  empty profile         → trending, status="trending" (ranker never scores)
  search answers        → search hits, status="personalized"
  search unavailable    → trending, status="degraded" (soft failure)
  trending unavailable  → CollaboratorUnavailableError (503)

How terms become queries is a QueryStrategy:

  combined  - one query carrying every ranked term
  per_term  - one query per term; hits merged by best score, de-duplicated

Public API
----------
FeedAssembler(ranker, search, trending, strategy).get_feed(snapshot) -> FeedResult
get_feed_for_user(db, user_id, strategy_name=None)                   -> FeedResult
rank_terms_for_user(db, user_id)                                      -> RankedTerms
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from sqlalchemy.orm import Session

from app.core.config import settings as default_settings
from app.core.errors import CollaboratorUnavailableError
from app.services.collaborators import (
    SearchHit,
    SearchIndex,
    TrendingSource,
    build_collaborators,
)
from app.services.profile_aggregator import (
    ProfileSnapshot,
    load_global_documents,
    load_snapshot,
)
from app.services.ranking import CorpusStats, HybridRanker, RankedTerms, RankingConfig

logger = logging.getLogger(__name__)


class FeedStatus(str, enum.Enum):
    personalized = "personalized"
    trending = "trending"
    degraded = "degraded"


@dataclass
class FeedItem:
    video_id: str
    score: Optional[float] = None


@dataclass
class FeedResult:
    status: FeedStatus
    source: str                       # "search" | "trending"
    terms: list[str] = field(default_factory=list)
    items: list[FeedItem] = field(default_factory=list)
    strategy: Optional[str] = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Query strategies
# ---------------------------------------------------------------------------

class QueryStrategy(Protocol):
    name: str

    def execute(self, search: SearchIndex, terms: Sequence[str]) -> list[SearchHit]:
        ...


class CombinedQuery:
    name = "combined"

    def execute(self, search: SearchIndex, terms: Sequence[str]) -> list[SearchHit]:
        return search.query(list(terms))


class PerTermQuery:
    name = "per_term"

    def execute(self, search: SearchIndex, terms: Sequence[str]) -> list[SearchHit]:
        best: dict[str, float] = {}
        first_seen: dict[str, int] = {}
        order = 0
        for term in terms:
            for hit in search.query([term]):
                if hit.video_id not in first_seen:
                    first_seen[hit.video_id] = order
                    order += 1
                best[hit.video_id] = max(best.get(hit.video_id, hit.score), hit.score)
        merged = [SearchHit(video_id=v, score=s) for v, s in best.items()]
        merged.sort(key=lambda h: (-h.score, first_seen[h.video_id]))
        return merged


_STRATEGIES: dict[str, type] = {
    CombinedQuery.name: CombinedQuery,
    PerTermQuery.name: PerTermQuery,
}


def strategy_by_name(name: str) -> QueryStrategy:
    try:
        return _STRATEGIES[name]()
    except KeyError:
        raise ValueError(f"unknown query strategy: {name!r}") from None


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------

class FeedAssembler:

    def __init__(
        self,
        ranker: HybridRanker,
        search: SearchIndex,
        trending: TrendingSource,
        strategy: Optional[QueryStrategy] = None,
        limit: Optional[int] = None,
    ):
        self.ranker = ranker
        self.search = search
        self.trending = trending
        self.strategy = strategy or CombinedQuery()
        self.limit = limit

    def _trending(self, status: FeedStatus, terms: list[str], error: Optional[str] = None) -> FeedResult:
        video_ids = self.trending.fetch()
        if self.limit is not None:
            video_ids = video_ids[: self.limit]
        return FeedResult(
            status=status,
            source="trending",
            terms=terms,
            items=[FeedItem(video_id=v) for v in video_ids],
            strategy=self.strategy.name if terms else None,
            error=error,
        )

    def get_feed(self, snapshot: ProfileSnapshot) -> FeedResult:
        ranked = self.ranker.rank(snapshot)
        if ranked.is_empty:
            logger.info("[feed] user=%s empty profile, serving trending", snapshot.user_id)
            return self._trending(FeedStatus.trending, [])

        terms = list(ranked.terms)
        try:
            hits = self.strategy.execute(self.search, terms)
        except CollaboratorUnavailableError as exc:
            logger.warning(
                "[feed] user=%s search unavailable, degrading to trending: %s",
                snapshot.user_id, exc.message,
            )
            return self._trending(FeedStatus.degraded, terms, error=exc.code)

        if self.limit is not None:
            hits = hits[: self.limit]
        logger.info(
            "[feed] user=%s strategy=%s terms=%s hits=%d",
            snapshot.user_id, self.strategy.name, terms, len(hits),
        )
        return FeedResult(
            status=FeedStatus.personalized,
            source="search",
            terms=terms,
            items=[FeedItem(video_id=h.video_id, score=h.score) for h in hits],
            strategy=self.strategy.name,
        )


# ---------------------------------------------------------------------------
# Public: wiring used by the routers
# ---------------------------------------------------------------------------

def _build_ranker(db: Session) -> HybridRanker:
    corpus = None
    if default_settings.TFIDF_CORPUS == "global":
        corpus = CorpusStats.from_documents(load_global_documents(db))
    return HybridRanker(RankingConfig.from_settings(default_settings), corpus=corpus)


def rank_terms_for_user(db: Session, user_id: str) -> RankedTerms:
    return _build_ranker(db).rank(load_snapshot(db, user_id))


def get_feed_for_user(
    db: Session,
    user_id: str,
    strategy_name: Optional[str] = None,
) -> FeedResult:
    search, trending = build_collaborators(db, default_settings)
    assembler = FeedAssembler(
        ranker=_build_ranker(db),
        search=search,
        trending=trending,
        strategy=strategy_by_name(strategy_name or default_settings.QUERY_STRATEGY),
        limit=default_settings.FEED_SIZE,
    )
    return assembler.get_feed(load_snapshot(db, user_id))
