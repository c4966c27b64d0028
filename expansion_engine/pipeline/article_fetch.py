"""
Layer 3: fetch article URLs and reduce them to plain text.

Each fetch has a timeout, a byte ceiling, and bounded retries on
transient failures. PDFs are rejected. Text shorter than FETCH_MIN_CHARS
is treated as noise.
"""
import logging
import re
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from typing import Callable, List, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from expansion_engine.config import (
    FETCH_TIMEOUT_SECONDS, FETCH_MAX_BYTES, FETCH_MAX_CHARS, FETCH_MIN_CHARS,
    FETCH_RETRIES, FETCH_BACKOFF_SECONDS, FETCH_USER_AGENT, MAX_ARTICLES_PER_DOMAIN,
)
from expansion_engine.database import get_session
from expansion_engine.errors import ArticleFetchError
from expansion_engine.models.external_event import ExternalArticle

logger = logging.getLogger('pipeline.article_fetch')

_STRIP_TAGS = ['script', 'style', 'noscript', 'iframe']
_WHITESPACE_RE = re.compile(r'\s+')
_RETRY_STATUS = {429, 500, 502, 503, 504}
# Dropped connections mid-body surface as ChunkedEncodingError
_TRANSIENT_ERRORS = (requests.ConnectionError, requests.Timeout, requests.exceptions.ChunkedEncodingError)

_DATE_META = (
    {'property': 'article:published_time'},
    {'name': 'date'},
    {'name': 'publishdate'},
)


class _TransientFetchError(Exception):
    pass


@dataclass
class FetchedArticle:
    url: str
    text: str
    published_date: Optional[str] = None

    @property
    def content_length(self):
        return len(self.text)


def is_pdf_url(url) -> bool:
    return urlparse(url).path.lower().endswith('.pdf')


def clean_html_to_text(html: str, max_chars: int = FETCH_MAX_CHARS) -> str:
    """Visible body text with scripts/styles removed and whitespace collapsed."""
    soup = BeautifulSoup(html or '', 'html.parser')
    for tag in soup.find_all(_STRIP_TAGS):
        tag.decompose()
    root = soup.body or soup
    text = _WHITESPACE_RE.sub(' ', root.get_text(' ', strip=True)).strip()
    return text[:max_chars]


def extract_published_date(html: str) -> Optional[str]:
    """Best-effort publication date from meta tags or <time datetime>."""
    soup = BeautifulSoup(html or '', 'html.parser')
    for attrs in _DATE_META:
        tag = soup.find('meta', attrs=attrs)
        if tag and tag.get('content'):
            return tag['content'].strip()
    tag = soup.find('time', attrs={'datetime': True})
    if tag and tag['datetime'].strip():
        return tag['datetime'].strip()
    return None


def _header_date(value) -> Optional[str]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value).isoformat()
    except (TypeError, ValueError):
        return None


def _read_capped(resp) -> bytes:
    declared = resp.headers.get('Content-Length')
    if declared and declared.isdigit() and int(declared) > FETCH_MAX_BYTES:
        raise ArticleFetchError(resp.url, 'too_large')
    chunks = []
    total = 0
    for chunk in resp.iter_content(chunk_size=64 * 1024):
        total += len(chunk)
        if total > FETCH_MAX_BYTES:
            raise ArticleFetchError(resp.url, 'too_large')
        chunks.append(chunk)
    return b''.join(chunks)


def _fetch_once(url) -> FetchedArticle:
    try:
        resp = requests.get(
            url,
            headers={'User-Agent': FETCH_USER_AGENT, 'Accept': 'text/html,application/xhtml+xml'},
            timeout=FETCH_TIMEOUT_SECONDS,
            stream=True,
            allow_redirects=True,
        )
    except _TRANSIENT_ERRORS as e:
        raise _TransientFetchError(str(e)) from e
    except requests.RequestException as e:
        raise ArticleFetchError(url, f"request_error: {e}") from e

    with resp:
        if resp.status_code in _RETRY_STATUS:
            raise _TransientFetchError(f"HTTP {resp.status_code}")
        if not resp.ok:
            raise ArticleFetchError(url, f"http_{resp.status_code}")

        content_type = (resp.headers.get('Content-Type') or '').lower()
        if 'application/pdf' in content_type:
            raise ArticleFetchError(url, 'pdf')

        try:
            body = _read_capped(resp)
        except _TRANSIENT_ERRORS as e:
            raise _TransientFetchError(str(e)) from e
        except requests.RequestException as e:
            raise ArticleFetchError(url, f"read_error: {e}") from e

        html = body.decode(resp.encoding or 'utf-8', errors='replace')
        text = clean_html_to_text(html)
        if len(text) < FETCH_MIN_CHARS:
            raise ArticleFetchError(url, 'too_short')

        published = extract_published_date(html) or _header_date(resp.headers.get('Last-Modified'))
        return FetchedArticle(url=url, text=text, published_date=published)


def fetch_article(url) -> FetchedArticle:
    """Fetch one URL, retrying transient failures. Raises ArticleFetchError."""
    if is_pdf_url(url):
        raise ArticleFetchError(url, 'pdf')

    for attempt in range(FETCH_RETRIES + 1):
        try:
            return _fetch_once(url)
        except _TransientFetchError as e:
            if attempt < FETCH_RETRIES:
                logger.info("Transient fetch error for %s (attempt %d): %s", url, attempt + 1, e)
                time.sleep(FETCH_BACKOFF_SECONDS)
                continue
            raise ArticleFetchError(url, f"transient: {e}") from e


def store_article(domain, article: FetchedArticle):
    session = get_session()
    try:
        session.add(ExternalArticle(
            domain=domain,
            url=article.url,
            published_date=article.published_date,
            text=article.text,
            content_length=article.content_length,
        ))
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def select_urls(urls, max_articles=MAX_ARTICLES_PER_DOMAIN) -> List[str]:
    """De-duplicated URLs in original order, capped at max_articles."""
    selected = []
    for url in urls:
        if url and url not in selected:
            selected.append(url)
        if len(selected) >= max_articles:
            break
    return selected


def fetch_and_store(domain, url, on_url_result: Callable = None) -> Optional[FetchedArticle]:
    """
    Fetch and persist one article. Returns None when it was skipped.

    on_url_result(url, status, reason, length) is called either way.
    """
    try:
        article = fetch_article(url)
    except ArticleFetchError as e:
        logger.info("Skipped %s: %s", url, e.reason)
        if on_url_result:
            on_url_result(url, 'skipped', e.reason, 0)
        return None

    store_article(domain, article)
    if on_url_result:
        on_url_result(url, 'fetched', None, article.content_length)
    return article
