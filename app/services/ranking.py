"""
Hybrid term ranker.

Two models score every live term of a profile snapshot:

  sequence  - first-order Markov chain over the weighted token stream in
              watch order. A term's score is its mean transition
              probability from the tokens of the most recent entry, i.e.
              how likely it is to come next given what was just watched.

  frequency - TF-IDF. TF is the term's share of the weighted history; IDF
              is smoothed, ln((1 + N) / (1 + df)) + 1, over a corpus of
              token documents (the user's own entries by default).

Each score set is max-normalised, then blended:

    blended = w * sequence + (1 - w) * frequency

The top N (default 8) distinct terms win. Ties go to the term seen most
recently, then to lexical order, so equal snapshots always rank equally.
An empty snapshot short-circuits to RankedTerms.empty() before any model
runs.
"""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from app.core.config import Settings
from app.services.profile_aggregator import ProfileSnapshot

logger = logging.getLogger(__name__)

_TIE_PRECISION = 12


@dataclass(frozen=True)
class RankingConfig:
    sequence_weight: float = 0.5
    top_n: int = 8

    @classmethod
    def from_settings(cls, s: Settings) -> "RankingConfig":
        return cls(sequence_weight=s.HYBRID_SEQUENCE_WEIGHT, top_n=s.RANK_TOP_N)

    def __post_init__(self) -> None:
        if not 0.0 <= self.sequence_weight <= 1.0:
            raise ValueError("sequence_weight must be within [0, 1]")
        if self.top_n < 1:
            raise ValueError("top_n must be at least 1")


@dataclass(frozen=True)
class CorpusStats:
    """Document frequencies for the IDF half of the frequency model."""
    total_documents: int
    document_frequency: Mapping[str, int]

    @classmethod
    def from_documents(cls, documents: Iterable[Iterable[str]]) -> "CorpusStats":
        df: dict[str, int] = defaultdict(int)
        total = 0
        for doc in documents:
            total += 1
            for term in set(doc):
                df[term] += 1
        return cls(total_documents=total, document_frequency=dict(df))

    def idf(self, term: str) -> float:
        df = self.document_frequency.get(term, 0)
        return math.log((1 + self.total_documents) / (1 + df)) + 1.0


@dataclass(frozen=True)
class TermScore:
    term: str
    sequence: float
    frequency: float
    blended: float
    last_seen_seq: int


@dataclass(frozen=True)
class RankedTerms:
    terms: tuple[str, ...]
    scores: tuple[TermScore, ...] = ()
    is_empty: bool = False

    @classmethod
    def empty(cls) -> "RankedTerms":
        return cls(terms=(), scores=(), is_empty=True)


def _normalise(scores: Mapping[str, float]) -> dict[str, float]:
    top = max(scores.values(), default=0.0)
    if top <= 0:
        return {term: 0.0 for term in scores}
    return {term: value / top for term, value in scores.items()}


class HybridRanker:

    def __init__(self, config: Optional[RankingConfig] = None, corpus: Optional[CorpusStats] = None):
        self.config = config or RankingConfig()
        self.corpus = corpus

    def rank(self, snapshot: ProfileSnapshot) -> RankedTerms:
        if snapshot.is_empty:
            return RankedTerms.empty()

        sequence = _normalise(self.sequence_scores(snapshot))
        frequency = _normalise(self.frequency_scores(snapshot))
        last_seen = snapshot.last_seen()
        w = self.config.sequence_weight

        scored = [
            TermScore(
                term=term,
                sequence=sequence.get(term, 0.0),
                frequency=frequency.get(term, 0.0),
                blended=w * sequence.get(term, 0.0) + (1.0 - w) * frequency.get(term, 0.0),
                last_seen_seq=last_seen.get(term, 0),
            )
            for term in snapshot.term_weights
        ]
        scored.sort(key=lambda s: (-round(s.blended, _TIE_PRECISION), -s.last_seen_seq, s.term))
        top = tuple(scored[: self.config.top_n])

        logger.debug(
            "[ranking] user=%s candidates=%d picked=%s",
            snapshot.user_id, len(scored), [s.term for s in top],
        )
        return RankedTerms(terms=tuple(s.term for s in top), scores=top)

    def sequence_scores(self, snapshot: ProfileSnapshot) -> dict[str, float]:
        """Mean P(term | c) over the distinct tokens c of the latest entry."""
        transitions: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
        previous: Optional[str] = None
        for entry in snapshot.entries:
            for token in entry.tokens:
                if previous is not None:
                    transitions[previous][token] += entry.weight
                previous = token

        latest = next((e for e in reversed(snapshot.entries) if e.tokens), None)
        context = sorted(set(latest.tokens)) if latest else []
        scores = {term: 0.0 for term in snapshot.term_weights}
        if not context:
            return scores

        for source in context:
            outgoing = transitions.get(source)
            if not outgoing:
                continue
            total = sum(outgoing[t] for t in sorted(outgoing))
            for target in sorted(outgoing):
                if target in scores:
                    scores[target] += outgoing[target] / total
        return {term: value / len(context) for term, value in scores.items()}

    def frequency_scores(self, snapshot: ProfileSnapshot) -> dict[str, float]:
        corpus = self.corpus or CorpusStats.from_documents(e.tokens for e in snapshot.entries)
        total_weight = sum(snapshot.term_weights[t] for t in sorted(snapshot.term_weights))
        if total_weight <= 0:
            return {term: 0.0 for term in snapshot.term_weights}
        return {
            term: (weight / total_weight) * corpus.idf(term)
            for term, weight in snapshot.term_weights.items()
        }
