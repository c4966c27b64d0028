"""
External-event enrichment — layers 1-5 per domain, sequentially.

  QUERY BUILDER → SEARCH → FETCH → EXTRACT → DEDUPE/STORE

Per-domain failures are logged, counted and skipped. Per-article fetch and
extraction failures are counted without stopping the domain's remaining
articles. A missing LLM credential stops enrichment immediately.
"""
import logging
from typing import List

from expansion_engine.config import EXTERNAL_EVENTS_MAX_DOMAINS, MAX_ARTICLES_PER_DOMAIN
from expansion_engine.errors import ConfigurationError, SearchLayerError
from expansion_engine.pipeline.article_fetch import fetch_and_store, select_urls
from expansion_engine.pipeline.base import EXTERNAL_EVENTS_STEP, EnrichmentSummary, RunStep
from expansion_engine.pipeline.dedupe import dedupe_and_store
from expansion_engine.pipeline.event_extract import extract_events_from_article
from expansion_engine.pipeline.query_builder import build_queries
from expansion_engine.pipeline.search import run_search_and_store
from expansion_engine.services.db import get_customer, merge_run_config, set_progress
from expansion_engine.services.run_log import append_run_log

logger = logging.getLogger('pipeline.enrichment')


class _DomainEnricher:
    """Runs the five layers for one domain and accumulates into the shared summary."""

    def __init__(self, run_id, domain, summary: EnrichmentSummary, event_prompt_id=None, provider=None):
        self.run_id = run_id
        self.domain = domain
        self.summary = summary
        self.event_prompt_id = event_prompt_id
        self.provider = provider
        self.articles_fetched = 0
        self.events_stored = 0

    def log(self, level, message, step, detail=None):
        append_run_log(self.run_id, level, message, domain=self.domain, step=step.value, detail=detail)

    def run(self, label):
        customer = get_customer(self.domain)
        account_name = customer.account_name if customer else None

        set_progress(self.run_id, RunStep.QUERY_BUILDER, self.domain, label)
        queries = build_queries(self.domain, account_name)
        self.log('info', f"Queries built for {self.domain}", RunStep.QUERY_BUILDER,
                 {'count': len(queries)})

        set_progress(self.run_id, RunStep.SEARCH, self.domain, label)
        urls = run_search_and_store(self.domain, queries, provider=self.provider,
                                    on_query_done=self._on_query_done)
        urls = select_urls(urls, MAX_ARTICLES_PER_DOMAIN)
        self.log('info', f"Search results for {self.domain}", RunStep.SEARCH, {'url_count': len(urls)})

        set_progress(self.run_id, RunStep.FETCH, self.domain, f"Fetching articles for {self.domain}")
        for index, url in enumerate(urls, start=1):
            try:
                self._process_article(index, len(urls), url)
            except ConfigurationError:
                raise
            except Exception as e:
                logger.warning("Article %s failed for %s: %s", url, self.domain, e, exc_info=True)
                self.summary.articles_failed += 1
                self.summary.errors.append(f"{self.domain}: article failed for {url}: {e}")
                self.log('warn', f"Article failed for {url}: {e}", RunStep.FETCH)

        self.log('info', f"Domain {self.domain} completed", RunStep.DEDUPE_STORE, {
            'articles_fetched': self.articles_fetched,
            'events_from_domain': self.events_stored,
        })

    def _on_query_done(self, query, hits):
        self.log('info', f"Search query: {query.category}", RunStep.SEARCH, {
            'category': query.category,
            'query': query.query,
            'result_count': len(hits),
        })

    def _on_url_result(self, url, status, reason, length):
        self.log('info', "Article fetch", RunStep.FETCH,
                 {'url': url, 'status': status, 'reason': reason, 'length': length})

    def _on_decision(self, action, candidate, reason):
        message = "Dedupe insert" if action == 'insert' else "Dedupe skip"
        self.log('info', message, RunStep.DEDUPE_STORE, {
            'event_type': candidate.event_type,
            'event_ts': candidate.event_ts,
            'reason': reason,
        })

    def _process_article(self, index, total, url):
        set_progress(self.run_id, RunStep.FETCH, self.domain, f"Article {index}/{total}: {url}")
        article = fetch_and_store(self.domain, url, on_url_result=self._on_url_result)
        if article is None:
            self.summary.articles_failed += 1
            return
        self.summary.articles_fetched += 1
        self.articles_fetched += 1

        set_progress(self.run_id, RunStep.EXTRACT, self.domain, f"Article {index}/{total}: {url}")
        self.log('info', "LLM extract input", RunStep.EXTRACT, {
            'source_url': url,
            'published_date': article.published_date,
            'article_text_length': article.content_length,
        })
        try:
            candidates = extract_events_from_article(
                self.domain, article.text, url, article.published_date, self.event_prompt_id,
            )
        except ConfigurationError:
            raise
        except Exception as e:
            self.summary.articles_failed += 1
            self.summary.errors.append(f"{self.domain}: extract failed for {url}: {e}")
            self.log('warn', f"Extraction failed for {url}: {e}", RunStep.EXTRACT)
            return

        self.log('info', "LLM extract output", RunStep.EXTRACT,
                 {'events': [c.to_log_dict() for c in candidates]})

        set_progress(self.run_id, RunStep.DEDUPE_STORE, self.domain, f"Article {index}/{total}: {url}")
        stored = dedupe_and_store(candidates, on_decision=self._on_decision)
        self.summary.events_stored += stored
        self.events_stored += stored
        self.log('info', f"Article extracted: {url}", RunStep.EXTRACT, {
            'events_extracted': len(candidates),
            'events_stored': stored,
        })


def run_external_events_enrichment(run_id, domains: List[str], max_domains=None,
                                   event_prompt_id=None, provider=None) -> EnrichmentSummary:
    """Enrich up to max_domains domains and merge the summary into the run config."""
    max_domains = EXTERNAL_EVENTS_MAX_DOMAINS if max_domains is None else max_domains
    selected = list(domains)[:max_domains]
    summary = EnrichmentSummary()

    append_run_log(run_id, 'info', "External events enrichment started", step=EXTERNAL_EVENTS_STEP,
                   detail={'domain_count': len(selected), 'max_domains': max_domains})

    for i, domain in enumerate(selected, start=1):
        label = f"Domain {i} of {len(selected)}"
        enricher = _DomainEnricher(run_id, domain, summary, event_prompt_id, provider)
        try:
            enricher.run(label)
            summary.domains_processed += 1
        except ConfigurationError:
            raise
        except SearchLayerError as e:
            summary.domains_skipped += 1
            summary.errors.append(f"{domain}: search failed: {e}")
            append_run_log(run_id, 'warn', f"Search failed for {domain}: {e}",
                           domain=domain, step=RunStep.SEARCH.value)
        except Exception as e:
            logger.error("Enrichment failed for %s", domain, exc_info=True)
            summary.domains_skipped += 1
            summary.errors.append(f"{domain}: {e}")
            append_run_log(run_id, 'error', f"Domain {domain} failed: {e}",
                           domain=domain, step=RunStep.DEDUPE_STORE.value)

    set_progress(run_id, RunStep.DEDUPE_STORE, None, None)
    merge_run_config(run_id, **summary.to_config())
    append_run_log(run_id, 'info', "External events enrichment finished", step=EXTERNAL_EVENTS_STEP,
                   detail=summary.to_dict())
    return summary
