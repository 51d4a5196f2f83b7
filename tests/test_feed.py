"""
Tests for feed assembly with in-memory collaborators.

Covered:
  - empty profile → trending, ranker scoring never invoked
  - combined vs per-term query strategies
  - search unavailable → degraded trending feed
  - trending unavailable too → CollaboratorUnavailableError
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import CollaboratorUnavailableError
from app.services.collaborators import SearchHit
from app.services.feed import (
    CombinedQuery,
    FeedAssembler,
    FeedStatus,
    PerTermQuery,
    strategy_by_name,
)
from app.services.profile_aggregator import LinearRankDecay, _EntryRow, build_snapshot
from app.services.ranking import HybridRanker

T0 = datetime(2026, 4, 1, 18, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeSearch:
    def __init__(self, index: dict[str, list[SearchHit]] | None = None, fail: bool = False):
        self.index = index or {}
        self.fail = fail
        self.queries: list[list[str]] = []

    def query(self, terms):
        self.queries.append(list(terms))
        if self.fail:
            raise CollaboratorUnavailableError("search", "connection refused")
        hits = []
        for term in terms:
            hits.extend(self.index.get(term, []))
        return hits


class FakeTrending:
    def __init__(self, video_ids=None, fail: bool = False):
        self.video_ids = video_ids or ["trend-1", "trend-2", "trend-3"]
        self.fail = fail
        self.calls = 0

    def fetch(self):
        self.calls += 1
        if self.fail:
            raise CollaboratorUnavailableError("trending", "timeout")
        return list(self.video_ids)


def _snapshot(*token_lists):
    rows = [
        _EntryRow(
            seq=i + 1,
            video_id=f"vid-{i + 1}",
            tokens=tuple(tokens),
            liked=False,
            occurred_at=T0 + timedelta(minutes=i),
        )
        for i, tokens in enumerate(token_lists)
    ]
    return build_snapshot("u", rows, {}, LinearRankDecay(), 2.0)


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------

class TestFeedAssembler:
    def test_empty_profile_serves_trending_without_scoring(self, monkeypatch):
        def boom(self, snapshot):
            raise AssertionError("ranker must not score an empty profile")

        monkeypatch.setattr(HybridRanker, "sequence_scores", boom)
        monkeypatch.setattr(HybridRanker, "frequency_scores", boom)
        search = FakeSearch()
        assembler = FeedAssembler(HybridRanker(), search, FakeTrending())

        result = assembler.get_feed(_snapshot())
        assert result.status == FeedStatus.trending
        assert result.source == "trending"
        assert [i.video_id for i in result.items] == ["trend-1", "trend-2", "trend-3"]
        assert result.terms == []
        assert search.queries == []

    def test_personalized_feed_uses_ranked_terms(self):
        search = FakeSearch({"pasta": [SearchHit("v-pasta", 0.9)]})
        assembler = FeedAssembler(HybridRanker(), search, FakeTrending())

        result = assembler.get_feed(_snapshot(["pasta", "night"]))
        assert result.status == FeedStatus.personalized
        assert result.source == "search"
        assert result.strategy == "combined"
        assert len(search.queries) == 1
        assert sorted(search.queries[0]) == ["night", "pasta"]
        assert [i.video_id for i in result.items] == ["v-pasta"]

    def test_per_term_strategy_merges_and_deduplicates(self):
        search = FakeSearch({
            "pasta": [SearchHit("v-1", 0.4), SearchHit("v-2", 0.8)],
            "night": [SearchHit("v-1", 0.9), SearchHit("v-3", 0.1)],
        })
        assembler = FeedAssembler(HybridRanker(), search, FakeTrending(), strategy=PerTermQuery())

        result = assembler.get_feed(_snapshot(["pasta", "night"]))
        assert result.strategy == "per_term"
        assert len(search.queries) == 2
        assert [(i.video_id, i.score) for i in result.items] == [
            ("v-1", 0.9),
            ("v-2", 0.8),
            ("v-3", 0.1),
        ]

    def test_search_unavailable_degrades_to_trending(self):
        trending = FakeTrending()
        assembler = FeedAssembler(HybridRanker(), FakeSearch(fail=True), trending)

        result = assembler.get_feed(_snapshot(["pasta"]))
        assert result.status == FeedStatus.degraded
        assert result.source == "trending"
        assert result.error == "COLLABORATOR_UNAVAILABLE"
        assert result.terms == ["pasta"]
        assert trending.calls == 1

    def test_both_collaborators_down_raises(self):
        assembler = FeedAssembler(HybridRanker(), FakeSearch(fail=True), FakeTrending(fail=True))
        with pytest.raises(CollaboratorUnavailableError) as exc_info:
            assembler.get_feed(_snapshot(["pasta"]))
        assert exc_info.value.details["collaborator"] == "trending"

    def test_trending_down_on_empty_profile_raises(self):
        assembler = FeedAssembler(HybridRanker(), FakeSearch(), FakeTrending(fail=True))
        with pytest.raises(CollaboratorUnavailableError):
            assembler.get_feed(_snapshot())

    def test_limit_truncates(self):
        search = FakeSearch({"pasta": [SearchHit(f"v-{i}", 1.0 - i / 10) for i in range(6)]})
        assembler = FeedAssembler(HybridRanker(), search, FakeTrending(), limit=3)
        result = assembler.get_feed(_snapshot(["pasta"]))
        assert [i.video_id for i in result.items] == ["v-0", "v-1", "v-2"]


class TestStrategies:
    def test_lookup(self):
        assert isinstance(strategy_by_name("combined"), CombinedQuery)
        assert isinstance(strategy_by_name("per_term"), PerTermQuery)

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            strategy_by_name("round_robin")
