"""
Layer 2: run queries against the configured search provider and persist raw hits.

Providers without an API key return no results instead of raising. One
query's failure is logged and the remaining queries still run; an open
circuit or a domain where every query failed raises SearchLayerError.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional

import requests
from tavily import TavilyClient

from expansion_engine.config import (
    EXTERNAL_EVENTS_SEARCH_PROVIDER, EXTERNAL_EVENTS_NEWS_API_KEY,
    EXTERNAL_EVENTS_TAVILY_API_KEY, NEWS_API_URL,
    SEARCH_WINDOW_MONTHS, SEARCH_RESULTS_PER_QUERY,
)
from expansion_engine.database import get_session
from expansion_engine.errors import SearchLayerError
from expansion_engine.models.external_event import ExternalSearchResult
from expansion_engine.pipeline.query_builder import SearchQuery
from expansion_engine.services.circuit_breaker import CircuitOpenError, get_breaker
from expansion_engine.services.dates import shift_months

logger = logging.getLogger('pipeline.search')


@dataclass
class SearchHit:
    url: str
    title: str = ''
    snippet: str = ''


class SearchProvider(ABC):
    """search(query, date_from, date_to) → hits, capped at SEARCH_RESULTS_PER_QUERY."""
    name: str = ''

    def __init__(self, api_key=None):
        self.api_key = api_key

    def search(self, query: str, date_from: date, date_to: date) -> List[SearchHit]:
        if not self.api_key:
            return []
        hits = get_breaker(self.name).call(self._search, query, date_from, date_to)
        return hits[:SEARCH_RESULTS_PER_QUERY]

    @abstractmethod
    def _search(self, query: str, date_from: date, date_to: date) -> List[SearchHit]:
        ...


class NewsApiProvider(SearchProvider):
    name = 'newsapi'

    def _search(self, query, date_from, date_to):
        resp = requests.get(NEWS_API_URL, params={
            'q': query,
            'from': date_from.isoformat(),
            'to': date_to.isoformat(),
            'pageSize': SEARCH_RESULTS_PER_QUERY,
            'language': 'en',
            'sortBy': 'publishedAt',
            'apiKey': self.api_key,
        }, timeout=15)
        resp.raise_for_status()
        return [
            SearchHit(url=a['url'], title=a.get('title') or '', snippet=a.get('description') or '')
            for a in resp.json().get('articles') or []
            if a.get('url')
        ]


class TavilyProvider(SearchProvider):
    name = 'tavily'

    def __init__(self, api_key=None):
        super().__init__(api_key)
        self._client = TavilyClient(api_key=api_key) if api_key else None

    def _search(self, query, date_from, date_to):
        response = self._client.search(
            query=query,
            topic='news',
            days=max(1, (date_to - date_from).days),
            max_results=SEARCH_RESULTS_PER_QUERY,
        )
        return [
            SearchHit(url=r['url'], title=r.get('title') or '', snippet=r.get('content') or '')
            for r in response.get('results') or []
            if r.get('url')
        ]


PROVIDERS = {
    'newsapi': (NewsApiProvider, lambda: EXTERNAL_EVENTS_NEWS_API_KEY),
    'tavily': (TavilyProvider, lambda: EXTERNAL_EVENTS_TAVILY_API_KEY),
}


def get_provider(name=None) -> SearchProvider:
    name = (name or EXTERNAL_EVENTS_SEARCH_PROVIDER or 'newsapi').lower()
    if name not in PROVIDERS:
        raise ValueError(f"Unknown search provider: {name}. Available: {sorted(PROVIDERS)}")
    cls, key = PROVIDERS[name]
    api_key = key()
    if not api_key:
        logger.warning("No API key for search provider '%s', searches return no results", name)
    return cls(api_key=api_key)


def search_window(today: Optional[date] = None):
    today = today or date.today()
    return shift_months(today, -SEARCH_WINDOW_MONTHS), today


def _store_hits(domain, query: SearchQuery, provider_name, hits):
    if not hits:
        return
    session = get_session()
    try:
        session.add_all([
            ExternalSearchResult(
                domain=domain,
                query=query.query,
                category=query.category,
                provider=provider_name,
                url=hit.url,
                title=hit.title,
                snippet=hit.snippet,
            )
            for hit in hits
        ])
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def run_search_and_store(domain, queries: List[SearchQuery], provider: SearchProvider = None,
                         on_query_done: Callable = None, today: date = None) -> List[str]:
    """
    Execute every query, persist every hit, return the unique URLs in first-seen order.

    on_query_done(query, hits) is called after each successful query.
    """
    provider = provider or get_provider()
    date_from, date_to = search_window(today)

    urls = []
    seen = set()
    failures = 0
    last_error = None

    for query in queries:
        try:
            hits = provider.search(query.query, date_from, date_to)
        except CircuitOpenError as e:
            raise SearchLayerError(str(e)) from e
        except Exception as e:
            failures += 1
            last_error = e
            logger.warning("Search query failed for %s (%s): %s", domain, query.query, e)
            continue

        _store_hits(domain, query, provider.name, hits)
        if on_query_done:
            on_query_done(query, hits)

        for hit in hits:
            if hit.url not in seen:
                seen.add(hit.url)
                urls.append(hit.url)

    if queries and failures == len(queries):
        raise SearchLayerError(f"All {failures} queries failed: {last_error}")

    return urls
