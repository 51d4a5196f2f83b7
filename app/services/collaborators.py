"""
Search/Index and Trending collaborators.

Both are external services; this module only defines the contract and the
adapters that satisfy it.

  SearchIndex.query(terms)  -> list[SearchHit]   ordered by relevance
  TrendingSource.fetch()    -> list[str]         ordered video ids

Adapters
--------
HttpSearchIndex / HttpTrendingSource  - httpx clients for the real services.
LocalCatalogSearch / LocalTrendingSource - fall-backs built on the recorded
watch events, used when no service URL is configured (development, tests).

Any transport or payload problem surfaces as CollaboratorUnavailableError.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol, Sequence

import httpx
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import CollaboratorUnavailableError
from app.models.watch_event import WatchEventRecord
from app.services.events import hashtag_tokens, title_tokens

logger = logging.getLogger(__name__)

SEARCH = "search"
TRENDING = "trending"


@dataclass(frozen=True)
class SearchHit:
    video_id: str
    score: float


class SearchIndex(Protocol):
    def query(self, terms: Sequence[str]) -> list[SearchHit]:
        ...


class TrendingSource(Protocol):
    def fetch(self) -> list[str]:
        ...


# ---------------------------------------------------------------------------
# HTTP adapters
# ---------------------------------------------------------------------------

class HttpSearchIndex:
    """POST {base_url}/query {"terms": [...]} -> {"results": [{"video_id", "score"}]}"""

    def __init__(self, base_url: str, timeout: float = 2.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def query(self, terms: Sequence[str]) -> list[SearchHit]:
        try:
            if self._client is not None:
                response = self._client.post(f"{self.base_url}/query", json={"terms": list(terms)}, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(f"{self.base_url}/query", json={"terms": list(terms)})
            response.raise_for_status()
            payload = response.json()
            return [
                SearchHit(video_id=str(item["video_id"]), score=float(item.get("score", 0.0)))
                for item in payload["results"]
            ]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.warning("[collaborators] search query failed: %s", exc)
            raise CollaboratorUnavailableError(SEARCH, str(exc)) from exc


class HttpTrendingSource:
    """GET {base_url}/trending -> {"video_ids": [...]}"""

    def __init__(self, base_url: str, timeout: float = 2.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def fetch(self) -> list[str]:
        try:
            if self._client is not None:
                response = self._client.get(f"{self.base_url}/trending", timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.get(f"{self.base_url}/trending")
            response.raise_for_status()
            return [str(v) for v in response.json()["video_ids"]]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.warning("[collaborators] trending fetch failed: %s", exc)
            raise CollaboratorUnavailableError(TRENDING, str(exc)) from exc


# ---------------------------------------------------------------------------
# Local adapters (recorded watch events as the catalog)
# ---------------------------------------------------------------------------

class LocalCatalogSearch:
    """Score each known video by how many query terms its name or hashtags contain."""

    def __init__(self, db: Session, limit: int = 20, catalog_size: int = 5000):
        self.db = db
        self.limit = limit
        self.catalog_size = catalog_size

    def _catalog(self) -> dict[str, set[str]]:
        rows = (
            self.db.query(WatchEventRecord.video_id, WatchEventRecord.video_name, WatchEventRecord.hashtags)
            .order_by(WatchEventRecord.id.desc())
            .limit(self.catalog_size)
            .all()
        )
        catalog: dict[str, set[str]] = {}
        for video_id, name, hashtags in rows:
            if video_id in catalog:
                continue
            catalog[video_id] = set(title_tokens(name)) | set(hashtag_tokens(json.loads(hashtags or "[]")))
        return catalog

    def query(self, terms: Sequence[str]) -> list[SearchHit]:
        wanted = [t.lower() for t in terms]
        hits = []
        for video_id, tokens in self._catalog().items():
            matched = sum(1 for t in wanted if t in tokens)
            if matched:
                hits.append(SearchHit(video_id=video_id, score=matched / len(wanted)))
        hits.sort(key=lambda h: (-h.score, h.video_id))
        return hits[: self.limit]


class LocalTrendingSource:
    """Most-watched videos (counted events) over the trailing window."""

    def __init__(self, db: Session, window_days: int = 7, limit: int = 20):
        self.db = db
        self.window_days = window_days
        self.limit = limit

    def fetch(self) -> list[str]:
        since = datetime.now(tz=timezone.utc) - timedelta(days=self.window_days)
        plays = func.count(WatchEventRecord.id).label("plays")
        rows = (
            self.db.query(WatchEventRecord.video_id, plays)
            .filter(
                WatchEventRecord.discarded == False,  # noqa: E712
                WatchEventRecord.occurred_at >= since,
            )
            .group_by(WatchEventRecord.video_id)
            .order_by(plays.desc(), WatchEventRecord.video_id.asc())
            .limit(self.limit)
            .all()
        )
        return [video_id for video_id, _ in rows]


def build_collaborators(db: Session, s: Settings) -> tuple[SearchIndex, TrendingSource]:
    search: SearchIndex
    trending: TrendingSource
    if s.SEARCH_SERVICE_URL:
        search = HttpSearchIndex(s.SEARCH_SERVICE_URL, timeout=s.COLLABORATOR_TIMEOUT_SECONDS)
    else:
        search = LocalCatalogSearch(db, limit=s.FEED_SIZE)
    if s.TRENDING_SERVICE_URL:
        trending = HttpTrendingSource(s.TRENDING_SERVICE_URL, timeout=s.COLLABORATOR_TIMEOUT_SECONDS)
    else:
        trending = LocalTrendingSource(db, window_days=s.TRENDING_WINDOW_DAYS, limit=s.FEED_SIZE)
    return search, trending
